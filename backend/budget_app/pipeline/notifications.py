"""User-facing replies and the best-effort sender that delivers them."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

from ..domain.entities import Account, ExtractedTransaction, Outcome
from ..errors import WhatsAppAPIError

logger = logging.getLogger(__name__)


class TextTransport(Protocol):
    def send_text(self, to: str, body: str) -> str | None:
        ...


class MessageTemplates:
    """Every piece of copy the pipeline sends back to a user."""

    def __init__(self, currency_symbol: str = "Nu.") -> None:
        self.currency_symbol = currency_symbol

    def _amount(self, amount: float) -> str:
        formatted = f"{amount:.2f}"
        if formatted.endswith(".00"):
            formatted = formatted[:-3]
        return f"{self.currency_symbol}{formatted}"

    def registration_needed(self, address: str) -> str:
        return (
            "Welcome! 👋\n\n"
            "To use this feature, please:\n"
            "1. Download the Budget Tracker app\n"
            f"2. Register with this phone number: {address}\n"
            "3. Then send transaction screenshots here!\n\n"
            "📱 This ensures your transactions are saved to YOUR account."
        )

    def processing_started(self) -> str:
        return "🔄 Processing your transaction screenshot..."

    def image_not_found(self) -> str:
        return "❌ Could not find image in the message. Please try sending the screenshot again."

    def success(self, transaction: ExtractedTransaction) -> str:
        return (
            "✅ Transaction added successfully!\n\n"
            f"💰 Amount: {self._amount(transaction.amount)}\n"
            f"📂 Category: {transaction.category}\n"
            f"📅 Date: {transaction.date.isoformat()}\n"
            f"🏪 Merchant: {transaction.merchant}\n"
            f"📝 Type: {transaction.type}\n\n"
            "🎉 Your budget has been updated!"
        )

    def duplicate(self, transaction: ExtractedTransaction) -> str:
        return (
            "⚠️ This transaction appears to be a duplicate!\n\n"
            f"💰 Amount: {self._amount(transaction.amount)}\n"
            f"📂 Category: {transaction.category}\n"
            f"📅 Date: {transaction.date.isoformat()}\n"
            f"🏪 Merchant: {transaction.merchant}\n\n"
            "✅ Transaction already exists in your budget."
        )

    def extraction_failed(self) -> str:
        return (
            "❌ Could not extract transaction details from the image.\n\n"
            "Please make sure your screenshot clearly shows:\n"
            "• 💰 Amount\n"
            "• 🏪 Merchant/Store name\n"
            "• 📅 Transaction date\n"
            "• 💳 Transaction type\n\n"
            "Try taking a clearer screenshot and send it again!"
        )

    def save_failed(self) -> str:
        return (
            "❌ Error saving transaction to database.\n\n"
            "The transaction data was extracted but couldn't be saved. "
            "Please try again or add it manually in the app."
        )

    def processing_error(self) -> str:
        return (
            "❌ Sorry, there was an error processing your transaction.\n\n"
            "Please try again or add the transaction manually in the app.\n\n"
            "If this continues, contact support."
        )

    def help(self) -> str:
        return (
            "🤖 Budget Tracker Bot\n\n"
            "📸 Send a transaction screenshot to automatically add it to your budget.\n\n"
            "✨ Commands:\n"
            "• 'help' - Show this message\n"
            "• 'status' - Check your registration\n"
            "• 'test' - Test message\n\n"
            "Make sure you're registered in the Budget Tracker app first!"
        )

    def status_registered(self, account: Account) -> str:
        return (
            "✅ You're registered!\n"
            f"User ID: {str(account.id)[:8]}...\n"
            f"Phone: {account.phone_number}\n\n"
            "You can now send transaction screenshots for automatic processing."
        )

    def status_unregistered(self, address: str) -> str:
        return (
            "❌ You're not registered yet.\n"
            f"Your WhatsApp number: {address}\n"
            "Please register this exact number in the Budget Tracker app first."
        )

    def test_reply(self, address: str, text: str) -> str:
        return f'✅ Test successful!\nReceived from: {address}\nMessage: "{text}"\nWebhook is working correctly!'

    def unrecognised_command(self) -> str:
        return "I didn't understand that. Send 'help' for available commands or send a transaction screenshot. 📸"

    def unsupported_message(self) -> str:
        return (
            "Hi! Please send a screenshot of your transaction for automatic processing. 📸\n\n"
            "Commands:\n"
            "• Send image = Auto-add transaction\n"
            "• Type 'help' = Show this message"
        )


class Notifier:
    """Send replies without ever raising; failures are logged and returned."""

    def __init__(self, transport: TextTransport, templates: MessageTemplates | None = None) -> None:
        self.transport = transport
        self.templates = templates or MessageTemplates()

    def send(self, address: str, text: str) -> Outcome[str]:
        try:
            message_id = self.transport.send_text(address, text)
        except (WhatsAppAPIError, httpx.HTTPError) as exc:
            logger.error("Failed to send WhatsApp message to %s: %s", address, exc)
            return Outcome.failed(exc)
        logger.info("WhatsApp message sent to %s: %s", address, message_id)
        return Outcome.success(message_id or "")
