"""Herald: push notification targeting and delivery service."""
