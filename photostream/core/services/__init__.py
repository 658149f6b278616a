"""Application services: storage facade, upload orchestration, batch updates and webhooks."""
