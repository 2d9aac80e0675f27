from __future__ import annotations

import logging

import discord
from discord.ext import commands

from application.auth_gateway import RequiredStep
from application.onboarding import OnboardingResult, OnboardingStateMachine
from domain.errors import LoginError
from domain.models import OnboardingStep
from interfaces.common import ContextRegistry, enter_pin, onboarding_text, welcome_text

logger = logging.getLogger(__name__)


def create_discord_bot(contexts: ContextRegistry) -> commands.Bot:
    """
    Configure and return a Discord bot with behaviour analogous to the
    Telegram interface: sign in, PIN onboarding, passkey create/skip.

    PINs are typed as a single `!pin 123456` message and fed to the state
    machine digit by digit, so the same transition rules apply.
    """

    intents = discord.Intents.default()
    intents.message_content = True

    # Disable the default help command so we can provide our own `!help`.
    bot = commands.Bot(command_prefix="!", intents=intents, help_command=None)

    def current_machine(ctx: commands.Context) -> OnboardingStateMachine | None:
        context = contexts.get(ctx.author.id)
        context.refresh()
        if context.required_step() in (RequiredStep.SIGN_IN, RequiredStep.GRANTED):
            return None
        return context.start_onboarding(context.identity.id)

    async def report(ctx: commands.Context, machine: OnboardingStateMachine, result: OnboardingResult) -> None:
        text = onboarding_text(machine)
        if machine.step is OnboardingStep.PASSKEY and not machine.state.completed:
            text += "\nType !passkey to create a passkey or !skip to skip for now."
        if result.redirect_to:
            text += "\nAll set! Type !wallet to open your wallet."
        await ctx.send(text)

    @bot.event
    async def on_ready():
        logger.info("Discord bot logged in as %s (id=%s)", bot.user, bot.user.id)

    @bot.command(name="help")
    async def help_cmd(ctx: commands.Context):
        await ctx.send(
            "!signin <email or phone>   - sign in with your passkey\n"
            "!pin <digits>              - enter PIN digits\n"
            "!cancel                    - start the PIN over\n"
            "!passkey                   - create your passkey\n"
            "!skip                      - skip passkey setup for now\n"
            "!wallet                    - show your wallet\n"
            "!logout                    - sign out\n"
        )

    @bot.command(name="signin")
    async def signin_cmd(ctx: commands.Context, identifier: str):
        context = contexts.get(ctx.author.id)
        try:
            identity = await context.sign_in(identifier)
        except LoginError as exc:
            await ctx.send(str(exc) or "Authentication failed.")
            return
        if identity is None:
            return

        await ctx.send(welcome_text(context))
        machine = current_machine(ctx)
        if machine is not None:
            await report(ctx, machine, OnboardingResult(accepted=True))

    @bot.command(name="pin")
    async def pin_cmd(ctx: commands.Context, digits: str):
        machine = current_machine(ctx)
        if machine is None or machine.step is OnboardingStep.PASSKEY:
            await ctx.send("There is no PIN to enter right now.")
            return

        await report(ctx, machine, await enter_pin(machine, digits))

    @bot.command(name="cancel")
    async def cancel_cmd(ctx: commands.Context):
        machine = current_machine(ctx)
        if machine is None:
            return
        await report(ctx, machine, machine.cancel())

    @bot.command(name="passkey")
    async def passkey_cmd(ctx: commands.Context):
        machine = current_machine(ctx)
        if machine is None or machine.step is not OnboardingStep.PASSKEY:
            await ctx.send("Set your PIN first.")
            return
        await ctx.send("Follow the prompt on your device.")
        await report(ctx, machine, await machine.create_passkey())

    @bot.command(name="skip")
    async def skip_cmd(ctx: commands.Context):
        machine = current_machine(ctx)
        if machine is None or machine.step is not OnboardingStep.PASSKEY:
            await ctx.send("Nothing to skip right now.")
            return
        await report(ctx, machine, machine.skip_passkey())

    @bot.command(name="wallet")
    async def wallet_cmd(ctx: commands.Context):
        context = contexts.get(ctx.author.id)
        context.refresh()
        step = context.required_step()
        if step is RequiredStep.SIGN_IN:
            await ctx.send("Please !signin first.")
            return
        if step is not RequiredStep.GRANTED:
            await ctx.send("Finish setting up your account first (!pin, then !passkey or !skip).")
            return

        address = context.ensure_wallet_address()
        await ctx.send(f"Welcome, {context.identity.display_name or 'User'}\nWallet: {address}")

    @bot.command(name="logout")
    async def logout_cmd(ctx: commands.Context):
        contexts.get(ctx.author.id).logout()
        await ctx.send("You have been signed out.")

    return bot
