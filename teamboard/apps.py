from django.apps import AppConfig
from django.conf import settings
from channels import DEFAULT_CHANNEL_LAYER


class TeamboardConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'teamboard'

    def ready(self):
        """Create the subscription registry and the event publisher.

        Both live as long as the process; consumers and views reach them
        through this app config.
        """
        from .websocket_router import SubscriptionRegistry
        from .events import EventPublisher

        alias = getattr(settings, 'TEAMBOARD_CHANNEL_LAYER', DEFAULT_CHANNEL_LAYER)
        self.registry = SubscriptionRegistry(alias)
        self.publisher = EventPublisher(self.registry)
