from archtutor.services.router.classifier import QueryRouter

__all__ = ["QueryRouter"]
