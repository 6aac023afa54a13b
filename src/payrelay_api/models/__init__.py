"""API-specific request/response models.

Modules:
- common: camelCase base and the validation error envelope
- sessions: payment session request/response models
- webhooks: gateway webhook response envelope
"""

__all__: list[str] = []
