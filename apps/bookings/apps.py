from django.apps import AppConfig  # type: ignore


class BookingsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.bookings"
    label = "bookings"

    def ready(self) -> None:
        from shared.application.message_bus import message_bus

        from .application.command_handlers import register_handlers
        from .domain.events import BookingCreated
        from .tasks import schedule_hold_expiry

        register_handlers(message_bus)
        message_bus.register_event_handler(BookingCreated, schedule_hold_expiry)
