"""Service layer: turns engine outcomes into ServiceResult values."""
