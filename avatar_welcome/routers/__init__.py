from avatar_welcome.routers import access, admin, customer, files, webhooks

__all__ = ["access", "admin", "customer", "files", "webhooks"]
