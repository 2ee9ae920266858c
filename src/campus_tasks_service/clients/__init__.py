"""HTTP clients for external collaborators."""

from campus_tasks_service.clients.delivery_client import DeliveryClient
from campus_tasks_service.clients.identity_client import IdentityClient

__all__ = ["DeliveryClient", "IdentityClient"]
