"""
Note Domain Module

Domain-Driven Design implementation for ephemeral, alias-capable note storage.
Contains entities, value objects, repository interfaces, and domain services.
"""
