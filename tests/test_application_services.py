import asyncio
import unittest

from application.credential_binder import CredentialBinder
from application.identity_resolver import IdentityResolver
from application.services import WALLET_ADDRESS_PREFIX, AuthContext
from application.auth_gateway import RequiredStep
from application.session_store import SESSION_STORAGE_KEY, SessionStore
from domain.errors import (
    CredentialMismatchError,
    LoginError,
    MalformedResponseError,
    NotFoundError,
    RemoteUnavailableError,
)
from domain.models import SKIPPED_SETUP, OnboardingStep
from fakes import FakeCeremony, FakeDirectory, FakePinService, FakeSignerRegistry, InMemoryStorage


class AuthContextTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.directory = FakeDirectory(
            by_email={
                "john@example.com": {
                    "json": {"id": 42, "email": "john@example.com", "firstName": "John"}
                },
                "bound@example.com": {
                    "id": 7,
                    "email": "bound@example.com",
                    "hashedPin": "h",
                    "passkeyCAddress": "CADDR_A",
                },
            }
        )
        self.storage = InMemoryStorage()
        self.registry = FakeSignerRegistry()
        self.ceremony = FakeCeremony(address="CADDR_A")
        self.pin_service = FakePinService()
        self.binder = CredentialBinder(self.registry)
        self.context = self.build_context()

    def build_context(self) -> AuthContext:
        context = AuthContext(
            resolver=IdentityResolver(self.directory),
            binder=self.binder,
            session_store=SessionStore(self.storage),
            pin_service=self.pin_service,
            ceremony=self.ceremony,
        )
        context.initialize()
        return context

    async def test_login_resolves_binds_and_persists(self):
        identity = await self.context.login("john@example.com", "CADDR_A")

        self.assertEqual(identity.id, 42)
        self.assertEqual(identity.passkey_address, "CADDR_A")
        self.assertEqual(self.context.identity, identity)
        self.assertFalse(self.context.is_loading)
        self.assertEqual(SessionStore(self.storage).load(), identity)
        self.assertEqual(self.context.required_step(), RequiredStep.CREATE_PIN)

    async def test_session_survives_a_reload(self):
        await self.context.login("john@example.com", "CADDR_A")
        reloaded = self.build_context()
        self.assertEqual(reloaded.identity.id, 42)

    async def test_login_errors_are_consolidated(self):
        cases = [
            ("nobody@example.com", "CADDR_A", NotFoundError),
            ("bound@example.com", "CADDR_B", CredentialMismatchError),
            ("", "CADDR_A", ValueError),
        ]
        for identifier, address, cause in cases:
            with self.subTest(identifier=identifier):
                with self.assertRaises(LoginError) as caught:
                    await self.context.login(identifier, address)
                self.assertIsInstance(caught.exception.__cause__, cause)
                self.assertIsNone(self.context.identity)

    async def test_remote_failures_become_login_errors(self):
        for error in (RemoteUnavailableError("down", status_code=503), MalformedResponseError("bad")):
            with self.subTest(error=error):
                self.directory.error = error
                with self.assertRaises(LoginError) as caught:
                    await self.context.login("john@example.com", "CADDR_A")
                self.assertIs(caught.exception.__cause__, error)

    async def test_logout_during_pending_login_discards_result(self):
        gate = asyncio.Event()
        self.directory.gate = gate

        pending = asyncio.ensure_future(self.context.login("john@example.com", "CADDR_A"))
        await asyncio.sleep(0)
        self.context.logout()
        gate.set()

        self.assertIsNone(await pending)
        self.assertIsNone(self.context.identity)
        self.assertNotIn(SESSION_STORAGE_KEY, self.storage.values)
        self.assertEqual(self.registry.payloads, [])

    async def test_login_retries_queued_signer_registrations(self):
        self.registry.fail = True
        await self.context.login("john@example.com", "CADDR_A")
        self.context.logout()
        self.assertEqual(len(self.binder.pending_registrations), 1)

        self.registry.fail = False
        await self.context.login("bound@example.com", "CADDR_A")

        self.assertEqual(self.binder.pending_registrations, [])
        self.assertEqual(
            [payload["signerId"] for payload in self.registry.payloads], ["42", "42"]
        )

    async def test_sign_in_uses_passkey_connect(self):
        identity = await self.context.sign_in("bound@example.com")
        self.assertEqual(self.ceremony.connected, ["bound@example.com"])
        self.assertEqual(identity.id, 7)
        self.assertEqual(self.context.required_step(), RequiredStep.GRANTED)

    async def test_sign_in_ceremony_failure(self):
        self.ceremony.fail = True
        with self.assertRaises(LoginError):
            await self.context.sign_in("john@example.com")

    async def test_onboarding_flow_to_granted_with_skip(self):
        self.directory.registered = {"json": {"id": 5, "email": "fresh@example.com"}}
        identity = await self.context.register("Fresh", "User", email="fresh@example.com")
        self.assertEqual(self.context.required_step(), RequiredStep.CREATE_PIN)

        machine = self.context.start_onboarding(identity.id)
        for digit in "123456123456":
            await machine.press_digit(digit)
        self.assertEqual(machine.step, OnboardingStep.PASSKEY)
        self.assertEqual(self.pin_service.calls, [(5, "123456")])
        self.assertEqual(self.context.required_step(), RequiredStep.PASSKEY)

        machine.skip_passkey()
        self.assertEqual(self.context.identity.passkey_address, SKIPPED_SETUP)
        self.assertEqual(self.context.refresh().passkey_address, SKIPPED_SETUP)
        self.assertEqual(self.context.required_step(), RequiredStep.GRANTED)

    async def test_start_onboarding_checks_route_user(self):
        with self.assertRaises(LoginError):
            self.context.start_onboarding(42)
        await self.context.login("john@example.com", "CADDR_A")
        with self.assertRaises(LoginError):
            self.context.start_onboarding(99)
        self.assertIs(self.context.start_onboarding(42), self.context.start_onboarding(42))

    async def test_logout_closes_onboarding_and_clears_session(self):
        await self.context.login("john@example.com", "CADDR_A")
        machine = self.context.start_onboarding(42)
        self.context.logout()
        self.assertTrue(machine.closed)
        self.assertIsNone(self.context.identity)
        self.assertEqual(self.storage.values, {})

    async def test_wallet_address_is_provisioned_once_granted(self):
        self.assertIsNone(self.context.ensure_wallet_address())
        await self.context.sign_in("bound@example.com")

        address = self.context.ensure_wallet_address()
        self.assertTrue(address.startswith(WALLET_ADDRESS_PREFIX))
        self.assertEqual(self.context.ensure_wallet_address(), address)
        self.assertEqual(self.context.refresh().wallet_address, address)


if __name__ == "__main__":
    unittest.main()
