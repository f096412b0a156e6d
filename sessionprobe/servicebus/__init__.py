"""Service Bus building blocks of the probe."""
