"""
Response Generator.

Renders every outbound text: menus, confirmations, reminders,
feedback prompts, admin reports and error messages.
"""

import logging
from typing import Optional, Sequence

from slotbook.core.scheduling.availability import DayOption
from slotbook.core.scheduling.catalog import Catalog, Provider, Service, get_catalog
from slotbook.models.database import Appointment

logger = logging.getLogger(__name__)

DIVIDER = "------------------------------"


def format_price(value: float) -> str:
    """Format a price, e.g. 45 -> '$45.00'."""
    return f"${value:.2f}"


def format_day(day: str) -> str:
    """YYYY-MM-DD -> DD/MM/YYYY."""
    return "/".join(reversed(day.split("-")))


class ResponseGenerator:
    """Template-based message texts."""

    def __init__(self, catalog: Optional[Catalog] = None):
        self._catalog = catalog

    def _get_catalog(self) -> Catalog:
        if self._catalog is None:
            self._catalog = get_catalog()
        return self._catalog

    # === Onboarding ===

    def idle_hint(self) -> str:
        return (
            "Hi! Type *BOOK* to see available times, or "
            "*CANCEL APPOINTMENT* to manage your booking."
        )

    def flow_cancelled(self) -> str:
        return "Cancelled. Type *book* to start again."

    def generic_error(self) -> str:
        return "Sorry, something went wrong on our side. Please type *book* to try again."

    # === Booking menus ===

    def provider_menu(self, providers: Optional[Sequence[Provider]] = None) -> str:
        """Numbered provider list."""
        providers = providers if providers is not None else self._get_catalog().providers
        lines = ["Who would you like to book with?", DIVIDER]
        for i, provider in enumerate(providers, 1):
            lines.append(f"*{i}.* {provider.name}")
        lines.append(DIVIDER)
        lines.append("")
        lines.append(
            'Type the *number* or the *name*. Type "cancel" at any time to stop.'
        )
        return "\n".join(lines)

    def invalid_provider(self) -> str:
        return "Invalid option. Type the *number* or the *name* of the provider."

    def service_menu(self, selected: Sequence[Service] = ()) -> str:
        """Service menu.

        Cuts and the bundle are only listed until an exclusive service
        is held; add-ons are always listed.
        """
        catalog = self._get_catalog()
        has_exclusive = any(s.exclusive for s in selected)
        lines = ["Choose your services", ""]

        if selected:
            total = sum(s.price for s in selected)
            names = " + ".join(s.name for s in selected)
            lines.append(f"Added: {names} | Total: {format_price(total)}")
            lines.append(DIVIDER)

        if not has_exclusive:
            lines.append("*CUTS*")
            lines.append(DIVIDER)
            for service in catalog.exclusive_services:
                lines.append(f"{service.menu_code}. {service.name} | {format_price(service.price)}")
            lines.append(DIVIDER)
            if catalog.bundle:
                lines.append("")
                lines.append("*BUNDLE*")
                lines.append(DIVIDER)
                lines.append(
                    f"*{catalog.bundle.menu_code}.* {catalog.bundle.name} | "
                    f"{format_price(catalog.bundle.price)}"
                )
                lines.append(DIVIDER)

        lines.append("")
        lines.append("*ADD-ONS*")
        lines.append(DIVIDER)
        for service in catalog.addon_services:
            lines.append(f"{service.menu_code}. {service.name} | {format_price(service.price)}")
        lines.append(DIVIDER)
        lines.append("")
        if has_exclusive:
            lines.append("Type an add-on *number* or *CONTINUE* to pick a date.")
        else:
            lines.append("Type the *number* of a service, or *P* for the bundle.")
        return "\n".join(lines)

    def service_added(self, service: Service) -> str:
        if service.exclusive:
            return (
                f"{service.name} added. You can add *add-on* services or "
                "type *CONTINUE* to pick a date."
            )
        return f"{service.name} added."

    def bundle_added(self, service: Service) -> str:
        return f"{service.name} added. Type *CONTINUE* to pick a date."

    def second_exclusive_rejected(self) -> str:
        return "You can only choose one cut or bundle. Type *CONTINUE* to pick a date."

    def addon_without_exclusive(self) -> str:
        return "Please choose a *cut* or the *bundle* first, then add extras."

    def duplicate_addon(self, service: Service) -> str:
        return f'"{service.name}" is already added. Type *CONTINUE* or choose another add-on.'

    def continue_without_exclusive(self) -> str:
        return "Please choose at least one *cut* or the *bundle* (P) before continuing."

    def invalid_service(self) -> str:
        return "Invalid option. Type a service *number*, *P* for the bundle, or *CONTINUE*."

    def date_menu(
        self,
        provider_name: str,
        service_names: str,
        total: float,
        days: Sequence[DayOption],
    ) -> str:
        lines = [
            f"Summary: {provider_name} | {service_names} | {format_price(total)}",
            "",
            "*Choose a date:*",
        ]
        for i, day in enumerate(days, 1):
            lines.append(f"*{i}* - {day.display}")
        return "\n".join(lines)

    def no_days_available(self, provider_name: str) -> str:
        return f"No times available for *{provider_name}* in the coming days."

    def invalid_date(self) -> str:
        return "Invalid option. Type the *number* of the date."

    def day_filled_up(self, day: DayOption) -> str:
        return (
            f"Sorry! All times on {day.display} were just taken. "
            "Type *book* to start again."
        )

    def slot_menu(self, slots: Sequence[str]) -> str:
        if not slots:
            return "Sorry, there are no available times on that date."
        lines = ["*Available times*:"]
        for i, slot in enumerate(slots, 1):
            lines.append(f"{i} - {slot}")
        lines.append("")
        lines.append("Reply with the *number* of the time.")
        return "\n".join(lines)

    def invalid_slot(self) -> str:
        return "Invalid option. Type the *number* of the time."

    def name_prompt(
        self,
        provider_name: str,
        day: str,
        slot: str,
        service_names: str,
        total: float,
    ) -> str:
        return "\n".join([
            "*Confirmation:*",
            f"Provider: {provider_name}",
            f"Date: {format_day(day)} at {slot}",
            f"Services: {service_names}",
            f"Price: {format_price(total)}",
            "",
            "*What is your full name for the booking?*",
        ])

    def name_too_short(self) -> str:
        return "Please type your full name for the booking."

    # === Booking outcome ===

    def calendar_write_failed(self) -> str:
        return (
            "We could not reach the calendar to register your booking. "
            "Nothing was booked; please try again later."
        )

    def slot_lost(self) -> str:
        return (
            "This time was just booked by someone else. "
            "Please type *book* and try again."
        )

    def booking_confirmed(
        self,
        provider_name: str,
        day: str,
        slot: str,
        service_names: str,
        total: float,
        reminder_minutes: int = 30,
    ) -> str:
        return "\n".join([
            "*Booking confirmed!*",
            "",
            f"*Provider:* {provider_name}",
            f"*Date:* {format_day(day)}",
            f"*Time:* {slot}",
            f"*Services:* {service_names}",
            f"*Total:* {format_price(total)}",
            "",
            f"We will send you a reminder {reminder_minutes} minutes before your time!",
        ])

    def admin_new_booking(self, provider_name: str, client_name: str, day: str, slot: str) -> str:
        return "\n".join([
            "*NEW BOOKING*",
            f"Provider: {provider_name}",
            f"Client: {client_name}",
            f"Date: {format_day(day)} at {slot}",
        ])

    # === Cancellation ===

    def no_upcoming_appointment(self) -> str:
        return "You have no upcoming appointments to cancel."

    def confirm_cancellation(self, appointment: Appointment) -> str:
        return "\n".join([
            "*Cancellation*",
            "",
            f"Do you want to cancel *{appointment.services}* with "
            f"*{appointment.provider_name}* on {format_day(appointment.date)} "
            f"at {appointment.slot}?",
            "",
            "*1 - Yes, cancel*",
            "*2 - No, keep it*",
        ])

    def cancellation_done(self) -> str:
        return "Your appointment was cancelled."

    def cancellation_failed(self) -> str:
        return "We could not cancel this appointment. It may have been cancelled already."

    def cancellation_kept(self) -> str:
        return "Your appointment is kept."

    # === Deferred actions ===

    def reminder(
        self,
        services: str,
        provider_name: str,
        day: str,
        slot: str,
        lead_minutes: int = 30,
    ) -> str:
        return (
            f"*Reminder:* your *{services}* with *{provider_name}* is in "
            f"*{lead_minutes} minutes*, at *{slot}* on {format_day(day)}. "
            "Please be on time!"
        )

    def feedback_request(self, client_name: str, services: str, provider_name: str) -> str:
        return "\n".join([
            f"*Hi, {client_name}!* We hope you enjoyed your *{services}* "
            f"with *{provider_name}*.",
            "",
            "From 0 to 10, *how much did you like it?* (0 is very bad, 10 is very good)",
            "",
            "Please reply with the number only (e.g. 9).",
        ])

    def invalid_feedback(self) -> str:
        return "Invalid answer. Please send a number from 0 to 10."

    def feedback_thanks(self) -> str:
        return "Thank you for your feedback!"

    # === Admin ===

    def access_denied(self) -> str:
        return "*Access denied.*"

    def access_denied_with_request(self) -> str:
        return "*Access denied.*\nType *1* to request admin access."

    def admin_target_prompt(self) -> str:
        return "*Admin:* Which provider do you want to see? (e.g. Richard)"

    def admin_access_request(self, contact_name: str, user_id: str) -> str:
        return f"*ADMIN ACCESS REQUEST:* {contact_name}\nID: `{user_id}`"

    def access_request_sent(self) -> str:
        return "Request sent."

    def access_request_cancelled(self) -> str:
        return "Cancelled."

    def weekly_report(
        self,
        provider_query: str,
        start: str,
        end: str,
        appointments: Sequence[Appointment],
    ) -> str:
        """Week-ahead bookings grouped by day."""
        if not appointments:
            return f'Nothing found for "{provider_query}".'

        lines = [
            f"*Weekly schedule: {provider_query}*",
            f"({format_day(start)} to {format_day(end)})",
        ]
        current_day = None
        for appointment in appointments:
            if appointment.date != current_day:
                lines.append("")
                lines.append(f"*{format_day(appointment.date)}*:")
                current_day = appointment.date
            lines.append(
                f"{appointment.slot} - {appointment.client_name} ({appointment.services})"
            )
        return "\n".join(lines)

    def clear_usage(self) -> str:
        return (
            "*Admin:* Usage: !CLEARCAL PROVIDER YYYY-MM-DD\n"
            "e.g. *!CLEARCAL RICHARD 2026-12-01*"
        )

    def clear_unknown_provider(self, name: str) -> str:
        return f'Provider "{name}" not found.'

    def clear_invalid_date(self) -> str:
        return "Invalid date format. Use YYYY-MM-DD (e.g. 2026-12-01)."

    def clear_started(self, provider_name: str, day: str) -> str:
        return f"Clearing *{provider_name}*'s calendar for *{day}*..."

    def clear_done(self, deleted: int, day: str) -> str:
        if deleted == 0:
            return f"Calendar cleared. No booking events were found for {day}."
        return f"Calendar cleared. *{deleted}* booking events were deleted for {day}."

    def clear_failed(self) -> str:
        return "Could not talk to the calendar. Check the logs."


# Singleton
_generator: Optional[ResponseGenerator] = None


def get_response_generator() -> ResponseGenerator:
    """Get singleton ResponseGenerator."""
    global _generator
    if _generator is None:
        _generator = ResponseGenerator()
    return _generator
