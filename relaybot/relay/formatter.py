"""Telegram message texts (HTML parse mode)."""

from __future__ import annotations

from html import escape

from relaybot.session.models import Notification

QUESTION_PREVIEW_CHARS = 200
RESPONSE_PREVIEW_CHARS = 300

WELCOME_TEXT = (
    "🤖 <b>Welcome to the terminal relay bot!</b>\n\n"
    "I'll notify you when the assistant completes tasks or needs input.\n\n"
    "<b>How to send commands:</b>\n"
    "• Just type your command directly!\n"
    "• Or send a voice message 🎤\n\n"
    "Type /help for more information."
)

HELP_TEXT = (
    "📚 <b>Relay Bot Help</b>\n\n"
    "<b>Commands:</b>\n"
    "• <code>/start</code> - Welcome message\n"
    "• <code>/help</code> - Show this help\n\n"
    "<b>Sending commands to the assistant:</b>\n"
    "• Just type your command directly\n"
    "• Or send a voice message 🎤\n"
    "• Explicit format: <code>/cmd &lt;TOKEN&gt; &lt;command&gt;</code>\n\n"
    "<b>Examples:</b>\n"
    "• <code>analyze this code</code>\n"
    "• <code>fix the bug in the login function</code>\n\n"
    "<b>Tips:</b>\n"
    "• Commands are sent to the most recent active session\n"
    "• Sessions expire after 24 hours\n"
    "• Voice messages are transcribed automatically"
)


def _preview(text: str, limit: int) -> str:
    if len(text) <= limit:
        return escape(text)
    return escape(text[:limit]) + "..."


def render_notification(notification: Notification, token: str) -> str:
    """Render the outbound notification for a freshly created session."""
    if notification.type == "completed":
        emoji, status = "✅", "Completed"
    else:
        emoji, status = "⏳", "Waiting for Input"

    lines = [
        f"{emoji} <b>Task {status}</b>",
        f"<b>Project:</b> {escape(notification.project)}",
        f"<b>Session Token:</b> <code>{token}</code>",
        "",
    ]
    question = notification.metadata.get("user_question")
    if question:
        lines += ["📝 <b>Your Question:</b>", _preview(question, QUESTION_PREVIEW_CHARS), ""]
    response = notification.metadata.get("assistant_response")
    if response:
        lines += ["🤖 <b>Assistant Response:</b>", _preview(response, RESPONSE_PREVIEW_CHARS), ""]
    if not question and not response and notification.message:
        lines += [_preview(notification.message, RESPONSE_PREVIEW_CHARS), ""]

    lines += [
        "💬 <b>To send a command:</b>",
        "Just type your message directly or send a voice message 🎤",
    ]
    return "\n".join(lines)


def notification_buttons(token: str) -> list[list[tuple[str, str]]]:
    """Inline keyboard rows as (label, callback_data) pairs."""
    return [[("📝 Personal Chat", f"personal:{token}"), ("👥 Group Chat", f"group:{token}")]]


def render_confirmation(command: str, source_context: str) -> str:
    return (
        "✅ <b>Command sent successfully</b>\n\n"
        f"📝 <b>Command:</b> {escape(command)}\n"
        f"🖥️ <b>Session:</b> {escape(source_context)}\n\n"
        "The assistant is now processing your request..."
    )


def render_transcription(text: str) -> str:
    return f"📝 <b>Transcribed:</b> {escape(text)}"


def render_command_format(purpose: str, token: str, bot_username: str = "") -> str | None:
    """Instructions sent back when a notification button is pressed."""
    token = escape(token)
    if purpose == "personal":
        return (
            "📝 <b>Personal Chat Command Format:</b>\n\n"
            f"<code>/cmd {token} &lt;your command&gt;</code>\n\n"
            "<b>Example:</b>\n"
            f"<code>/cmd {token} please analyze this code</code>\n\n"
            "💡 <b>Copy and paste the format above, then add your command!</b>"
        )
    if purpose == "group":
        mention = f"@{escape(bot_username)}"
        return (
            "👥 <b>Group Chat Command Format:</b>\n\n"
            f"<code>{mention} /cmd {token} &lt;your command&gt;</code>\n\n"
            "<b>Example:</b>\n"
            f"<code>{mention} /cmd {token} please analyze this code</code>\n\n"
            "💡 <b>Copy and paste the format above, then add your command!</b>"
        )
    if purpose == "session":
        return (
            "📝 <b>How to send a command:</b>\n\n"
            "Type:\n"
            f"<code>/cmd {token} &lt;your command&gt;</code>\n\n"
            "Example:\n"
            f"<code>/cmd {token} please analyze this code</code>\n\n"
            "💡 <b>Tip:</b> New notifications have a button that shows the command format for you!"
        )
    return None
