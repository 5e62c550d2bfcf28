import inspect
import unittest
from unittest.mock import MagicMock, patch

from wheel_backend import dependencies
from wheel_backend.config import Settings
from wheel_backend.errors import (
    AuthError,
    BestEffortStatus,
    ModeDisabledError,
    TransportError,
)
from wheel_backend.facade import WheelBackend
from wheel_backend.gateway import FunctionGateway
from wheel_backend.identity import CallerKind, IdentityProvider, ResolvedCaller
from wheel_backend.loader import BackendHandle, BackendLoader
from wheel_backend.mode import BackendMode, OperationKind, mode_from_settings
from wheel_backend.store import InMemoryStore
from wheel_backend.types import SharedWheelRecord

REGISTERED = ResolvedCaller(CallerKind.REGISTERED, "user-1")
ANONYMOUS = ResolvedCaller(CallerKind.ANONYMOUS, "anon-1")

MUTATING_OPERATIONS = {
    "load_auth_user_interface",
    "log_in",
    "log_in_anonymously",
    "log_in_to_sheets",
    "save_wheel",
    "delete_saved_wheel",
    "set_dirty_words",
    "add_admin",
    "delete_admin",
    "set_admins_wheels_to_zero",
    "reset_session_reviews",
    "save_carousel",
    "approve_shared_wheel",
    "delete_shared_wheel",
    "create_shared_wheel",
    "delete_my_shared_wheel",
    "convert_account",
    "delete_account",
    "translate",
}


def gated_operations():
    return {
        name: member
        for name, member in vars(WheelBackend).items()
        if hasattr(member, "operation_kind")
    }


def required_args(func):
    params = [
        p
        for p in inspect.signature(func).parameters.values()
        if p.name != "self" and p.default is inspect.Parameter.empty
    ]
    return ["arg"] * len(params)


def make_backend(mode=BackendMode.CLOUD, caller=REGISTERED):
    store = InMemoryStore()
    identity = MagicMock(spec=IdentityProvider)
    identity.resolve_caller.return_value = caller
    identity.get_token.return_value = "token-123" if caller.present else None
    loader = MagicMock(spec=BackendLoader)
    loader.handle = BackendHandle(app=None, db="firestore-db", store=store, identity=identity)
    loader.ensure_loaded.return_value = loader.handle
    gateway = MagicMock(spec=FunctionGateway)
    backend = WheelBackend(loader, gateway, mode=mode)
    return backend, store, identity, gateway


class BasicModeTests(unittest.TestCase):
    def test_operation_kinds(self):
        mutating = {
            name
            for name, member in gated_operations().items()
            if member.operation_kind is OperationKind.MUTATE
        }
        self.assertEqual(mutating, MUTATING_OPERATIONS)

    def test_mutations_raise_without_backend_calls(self):
        backend, _, identity, gateway = make_backend(mode=BackendMode.BASIC)
        for name in MUTATING_OPERATIONS:
            method = getattr(backend, name)
            with self.subTest(operation=name):
                with self.assertRaises(ModeDisabledError) as ctx:
                    method(*required_args(method))
                self.assertIn("disabled in basic mode", str(ctx.exception))
                self.assertTrue(ctx.exception.feature)
        backend.loader.ensure_loaded.assert_not_called()
        self.assertEqual(gateway.method_calls, [])
        self.assertEqual(identity.method_calls, [])

    def test_reads_return_neutral_defaults(self):
        backend, _, identity, gateway = make_backend(mode=BackendMode.BASIC)
        neutral = (None, False, 0, "", [], {}, BestEffortStatus.SKIPPED)
        for name, member in gated_operations().items():
            if member.operation_kind is not OperationKind.READ:
                continue
            method = getattr(backend, name)
            with self.subTest(operation=name):
                self.assertIn(method(*required_args(method)), neutral)
        backend.loader.ensure_loaded.assert_not_called()
        self.assertEqual(gateway.method_calls, [])
        self.assertEqual(identity.method_calls, [])

    def test_specific_defaults(self):
        backend, _, _, _ = make_backend(mode=BackendMode.BASIC)
        self.assertEqual(backend.get_wheels(), [])
        self.assertIsNone(backend.get_shared_wheel("abc"))
        self.assertEqual(backend.get_earnings_per_review(), 0)
        self.assertIs(backend.user_is_logged_in(), False)
        self.assertEqual(backend.get_spin_stats(), {})
        self.assertEqual(backend.log_out(), BestEffortStatus.SKIPPED)

    def test_list_defaults_are_fresh(self):
        backend, _, _, _ = make_backend(mode=BackendMode.BASIC)
        first = backend.get_wheels()
        first.append("mutated")
        self.assertEqual(backend.get_wheels(), [])

    def test_mode_from_settings(self):
        self.assertIs(mode_from_settings(Settings(basic_mode=True)), BackendMode.BASIC)
        self.assertIs(mode_from_settings(Settings(basic_mode=False)), BackendMode.CLOUD)


class CloudModeTests(unittest.TestCase):
    def test_operations_initialize_backend_first(self):
        backend, _, _, _ = make_backend()
        backend.get_wheels()
        backend.load_libraries()
        self.assertEqual(backend.loader.ensure_loaded.call_count, 2)

    def test_save_then_list_overwrites_by_title(self):
        backend, store, _, _ = make_backend()
        backend.save_wheel({"title": "Lunch", "entries": ["pizza"]})
        backend.save_wheel({"title": "Lunch", "entries": ["sushi"]})
        wheels = backend.get_wheels()
        self.assertEqual(len(wheels), 1)
        self.assertEqual(wheels[0].title, "Lunch")
        self.assertEqual(wheels[0].config["entries"], ["sushi"])
        self.assertIn("Lunch", store.wheels["user-1"])

    def test_delete_missing_wheel_is_noop(self):
        backend, _, _, _ = make_backend()
        backend.delete_saved_wheel("missing-title")
        self.assertEqual(backend.get_wheels(), [])

    def test_absent_caller_cannot_write_owned_records(self):
        backend, store, _, _ = make_backend(caller=ResolvedCaller.absent())
        with self.assertRaises(AuthError):
            backend.save_wheel({"title": "Lunch"})
        with self.assertRaises(AuthError):
            backend.delete_saved_wheel("Lunch")
        with self.assertRaises(AuthError):
            backend.approve_shared_wheel("shared-1")
        with self.assertRaises(AuthError):
            backend.delete_shared_wheel("shared-1", True)
        self.assertEqual(store.wheels, {})
        self.assertEqual(store.admins, {})

    def test_absent_caller_reads_and_telemetry_degrade(self):
        backend, store, _, _ = make_backend(caller=ResolvedCaller.absent())
        self.assertEqual(backend.get_wheels(), [])
        backend.log_user_activity()
        backend.log_wheel_read("Lunch")
        self.assertEqual(store.activity, {})
        self.assertIsNone(backend.get_uid())

    def test_anonymous_caller_can_save(self):
        backend, store, _, _ = make_backend(caller=ANONYMOUS)
        backend.save_wheel({"title": "Guest wheel"})
        self.assertIn("Guest wheel", store.wheels["anon-1"])

    def test_anonymous_token_only_for_anonymous_users(self):
        backend, _, _, _ = make_backend(caller=ANONYMOUS)
        self.assertEqual(backend.get_anonymous_token_id(), "token-123")
        backend, _, _, _ = make_backend(caller=REGISTERED)
        self.assertIsNone(backend.get_anonymous_token_id())

    def test_review_attributed_to_caller(self):
        backend, store, _, _ = make_backend()
        store.shared_wheels["shared-1"] = SharedWheelRecord(path="shared-1")
        store.shared_wheels["shared-2"] = SharedWheelRecord(path="shared-2")

        backend.approve_shared_wheel("shared-1")
        backend.delete_shared_wheel("shared-2", False)

        admin = store.admins["user-1"]
        self.assertEqual(admin.approved_wheels, 1)
        self.assertEqual(admin.deleted_wheels, 0)
        self.assertEqual(admin.session_reviews, 1)
        self.assertEqual(store.shared_wheels["shared-1"].reviewed_by, "user-1")
        self.assertNotIn("shared-2", store.shared_wheels)

    def test_gateway_calls_carry_token(self):
        backend, _, _, gateway = make_backend()
        gateway.create_shared_wheel.return_value = "abc-def"
        self.assertEqual(backend.create_shared_wheel(True, {"title": "T"}), "abc-def")
        gateway.create_shared_wheel.assert_called_once_with(True, {"title": "T"}, "token-123")

        backend.get_number_of_wheels_in_review_queue()
        gateway.get_number_of_wheels_in_review_queue.assert_called_once_with("token-123")

        backend.convert_account("old-token")
        gateway.convert_account.assert_called_once_with("old-token", "token-123")

    def test_shared_wheels_listing_survives_token_refresh_failure(self):
        backend, _, identity, gateway = make_backend()
        gateway.tracker = MagicMock()
        identity.get_token.side_effect = TransportError("Token refresh failed: offline")

        self.assertEqual(backend.get_shared_wheels(), [])

        gateway.get_shared_wheels.assert_not_called()
        gateway.tracker.track_exception.assert_called_once()
        self.assertIsInstance(
            gateway.tracker.track_exception.call_args.args[0], TransportError
        )

    def test_gateway_calls_without_user_send_no_token(self):
        backend, _, _, gateway = make_backend(caller=ResolvedCaller.absent())
        backend.create_shared_wheel(False, {"title": "T"})
        gateway.create_shared_wheel.assert_called_once_with(False, {"title": "T"}, None)

    def test_log_in_requires_prompt(self):
        backend, _, _, _ = make_backend()
        with self.assertRaises(ValueError):
            backend.log_in("google", "en")

    def test_log_in_delegates_to_identity(self):
        backend, _, identity, _ = make_backend()
        prompt = MagicMock()
        backend.log_in("twitter", "pt-BR", prompt)
        identity.sign_in.assert_called_once_with("twitter", "pt-BR", prompt)

    def test_get_db_returns_handle_db(self):
        backend, _, _, _ = make_backend()
        self.assertEqual(backend.get_db(), "firestore-db")


class DependenciesTests(unittest.TestCase):
    def tearDown(self):
        dependencies._backend = None

    @patch("wheel_backend.dependencies.get_mode", return_value=BackendMode.BASIC)
    @patch("wheel_backend.dependencies.get_settings")
    def test_get_backend_is_singleton(self, mock_settings, _):
        mock_settings.return_value = Settings(
            basic_mode=True, function_prefix="https://functions.example.test"
        )
        dependencies._backend = None
        backend = dependencies.get_backend()
        self.assertIs(backend, dependencies.get_backend())
        self.assertIs(backend.mode, BackendMode.BASIC)
        self.assertEqual(backend.gateway.base_url, "https://functions.example.test")
        self.assertFalse(backend.loader.is_loaded)


if __name__ == "__main__":
    unittest.main()
