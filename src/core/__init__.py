"""Gateway core: domain, interfaces, services and configuration."""
