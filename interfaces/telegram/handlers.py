from __future__ import annotations

import logging
from typing import Callable, List

from telebot.async_telebot import AsyncTeleBot
from telebot.types import InlineKeyboardButton, InlineKeyboardMarkup

from application.auth_gateway import (
    DASHBOARD_ROUTE,
    SIGN_IN_ROUTE,
    AuthGateway,
    RequiredStep,
)
from application.onboarding import OnboardingStateMachine
from application.services import AuthContext
from domain.errors import LoginError
from domain.models import OnboardingStep
from interfaces.common import ContextRegistry, onboarding_text, welcome_text
from interfaces.telegram.callback_data import (
    PASSKEY_CREATE,
    PASSKEY_PREFIX,
    PASSKEY_SKIP,
    PIN_CANCEL,
    PIN_DELETE,
    PIN_PREFIX,
    encode_passkey_action,
    encode_pin_key,
    parse_passkey_action,
    parse_pin_key,
)

logger = logging.getLogger(__name__)


def build_pin_pad(user_id: int) -> InlineKeyboardMarkup:
    markup = InlineKeyboardMarkup(row_width=3)
    digits = [
        InlineKeyboardButton(str(n), callback_data=encode_pin_key(user_id, str(n)))
        for n in range(1, 10)
    ]
    markup.add(*digits)
    markup.add(
        InlineKeyboardButton("Cancel", callback_data=encode_pin_key(user_id, PIN_CANCEL)),
        InlineKeyboardButton("0", callback_data=encode_pin_key(user_id, "0")),
        InlineKeyboardButton("Delete", callback_data=encode_pin_key(user_id, PIN_DELETE)),
    )
    return markup


def build_passkey_markup(user_id: int, setup_url: str) -> InlineKeyboardMarkup:
    markup = InlineKeyboardMarkup(row_width=1)
    markup.add(
        InlineKeyboardButton("Set up Passkey in Secure Browser", url=setup_url),
        InlineKeyboardButton(
            "Create Passkey", callback_data=encode_passkey_action(user_id, PASSKEY_CREATE)
        ),
        InlineKeyboardButton(
            "Skip for now", callback_data=encode_passkey_action(user_id, PASSKEY_SKIP)
        ),
    )
    return markup


def create_telegram_bot(
    bot_token: str,
    contexts: ContextRegistry,
    passkey_setup_url: Callable[[int], str],
) -> AsyncTeleBot:
    """
    Configure and return an AsyncTeleBot wired to the application layer.

    Each chat gets its own `AuthContext`; this module only deals with
    Telegram messages, keyboards and callbacks.
    """

    bot = AsyncTeleBot(bot_token)

    def markup_for(machine: OnboardingStateMachine) -> InlineKeyboardMarkup | None:
        if machine.state.completed:
            return None
        if machine.step is OnboardingStep.PASSKEY:
            return build_passkey_markup(machine.identity.id, passkey_setup_url(machine.identity.id))
        return build_pin_pad(machine.identity.id)

    async def open_onboarding(chat_id: int, context: AuthContext) -> None:
        machine = context.start_onboarding(context.identity.id)
        await bot.send_message(chat_id, onboarding_text(machine), reply_markup=markup_for(machine))

    async def continue_after_login(chat_id: int, context: AuthContext) -> None:
        await bot.send_message(chat_id, welcome_text(context))
        if context.required_step() in (RequiredStep.CREATE_PIN, RequiredStep.PASSKEY):
            await open_onboarding(chat_id, context)

    @bot.message_handler(commands=["start", "help"])
    async def handle_start(message):
        await bot.send_message(
            message.chat.id,
            "Welcome to the wallet bot!\n"
            "/signin <email or phone>                  - sign in with your passkey\n"
            "/signup <first> <last> <email or phone>   - create an account\n"
            "/onboard                                  - continue PIN / passkey setup\n"
            "/wallet                                   - show your wallet\n"
            "/logout                                   - sign out\n",
        )

    @bot.message_handler(commands=["signin"])
    async def handle_signin(message):
        parts = message.text.split(maxsplit=1)
        if len(parts) < 2:
            await bot.send_message(message.chat.id, "Please enter your email or phone.")
            return

        context = contexts.get(message.chat.id)
        try:
            identity = await context.sign_in(parts[1])
        except LoginError as exc:
            await bot.send_message(message.chat.id, str(exc) or "Authentication failed.")
            return
        if identity is None:
            return
        await continue_after_login(message.chat.id, context)

    @bot.message_handler(commands=["signup"])
    async def handle_signup(message):
        parts = message.text.split()
        if len(parts) != 4:
            await bot.send_message(message.chat.id, "Usage: /signup <first> <last> <email or phone>")
            return

        first_name, last_name, contact = parts[1], parts[2], parts[3]
        email, phone = (contact, None) if "@" in contact else (None, contact)

        context = contexts.get(message.chat.id)
        try:
            await context.register(first_name, last_name, email=email, phone=phone)
        except LoginError as exc:
            await bot.send_message(message.chat.id, str(exc))
            return
        await bot.send_message(message.chat.id, "Account created!")
        await open_onboarding(message.chat.id, context)

    @bot.message_handler(commands=["onboard"])
    async def handle_onboard(message):
        context = contexts.get(message.chat.id)
        context.refresh()
        step = context.required_step()
        if step is RequiredStep.SIGN_IN:
            await bot.send_message(message.chat.id, "Please /signin first.")
        elif step is RequiredStep.GRANTED:
            await bot.send_message(message.chat.id, "Your account is already set up.")
        else:
            await open_onboarding(message.chat.id, context)

    @bot.message_handler(commands=["wallet"])
    async def handle_wallet(message):
        context = contexts.get(message.chat.id)
        context.refresh()

        redirects: List[str] = []
        gateway = AuthGateway(navigate=redirects.append)
        gateway.evaluate(context.identity, DASHBOARD_ROUTE, loading=context.is_loading)

        if redirects and redirects[0] == SIGN_IN_ROUTE:
            await bot.send_message(message.chat.id, "Please /signin first.")
            return
        if redirects:
            await open_onboarding(message.chat.id, context)
            return

        address = context.ensure_wallet_address()
        name = context.identity.display_name or "User"
        await bot.send_message(message.chat.id, f"Welcome, {name}\nWallet: {address}")

    @bot.message_handler(commands=["logout"])
    async def handle_logout(message):
        contexts.get(message.chat.id).logout()
        await bot.send_message(message.chat.id, "You have been signed out.")

    async def render(call, machine: OnboardingStateMachine, redirect_to: str | None) -> None:
        text = onboarding_text(machine)
        if redirect_to:
            text += "\nAll set! Use /wallet to open your wallet."
        await bot.edit_message_text(
            text,
            chat_id=call.message.chat.id,
            message_id=call.message.message_id,
            reply_markup=markup_for(machine),
        )

    def machine_for_callback(call, user_id: int) -> OnboardingStateMachine | None:
        context = contexts.get(call.message.chat.id)
        try:
            return context.start_onboarding(user_id)
        except LoginError:
            return None

    @bot.callback_query_handler(func=lambda call: call.data.startswith(PIN_PREFIX + ":"))
    async def handle_pin_key(call):
        try:
            user_id, key = parse_pin_key(call.data)
        except ValueError:
            await bot.answer_callback_query(call.id, "Invalid key.")
            return

        machine = machine_for_callback(call, user_id)
        if machine is None:
            await bot.answer_callback_query(call.id, "This session has ended.")
            return

        if key == PIN_DELETE:
            result = machine.delete_digit()
        elif key == PIN_CANCEL:
            result = machine.cancel()
        else:
            result = await machine.press_digit(key)

        await bot.answer_callback_query(call.id)
        if result.accepted:
            await render(call, machine, result.redirect_to)

    @bot.callback_query_handler(func=lambda call: call.data.startswith(PASSKEY_PREFIX + ":"))
    async def handle_passkey_action(call):
        try:
            user_id, action = parse_passkey_action(call.data)
        except ValueError:
            await bot.answer_callback_query(call.id, "Invalid selection.")
            return

        machine = machine_for_callback(call, user_id)
        if machine is None:
            await bot.answer_callback_query(call.id, "This session has ended.")
            return

        if action == PASSKEY_CREATE:
            await bot.answer_callback_query(call.id, "Follow the prompt on your device.")
            result = await machine.create_passkey()
        else:
            await bot.answer_callback_query(call.id, "You can set up a passkey later.")
            result = machine.skip_passkey()

        if result.accepted:
            await render(call, machine, result.redirect_to)

    return bot
