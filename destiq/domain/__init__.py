"""Domain Layer: value objects, data models, interfaces and events.

Has no dependencies on the infrastructure or core layers.
"""
