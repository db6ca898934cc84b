"""Tests for ProfileService."""
import pytest

from taskdesk.auth import TokenStore
from taskdesk.models.auth_models import NETWORK_ERROR_MESSAGE, SESSION_EXPIRED_MESSAGE, AvatarUpload
from taskdesk.models.enums import SubscriptionPlan, Theme
from taskdesk.models.service_models import ProfileUpdate, SettingsUpdate
from taskdesk.models.user import UserRecord
from taskdesk.services.api_gateway import NetworkError
from taskdesk.services.client_storage import ClientStorage
from taskdesk.services.profile_service import ProfileService
from taskdesk.user_store import UserStateStore
from tests.conftest import FakeGateway, failure, ok


@pytest.fixture
def signed_in(store: UserStateStore, tokens: TokenStore) -> UserRecord:
    user = UserRecord(id=7, email="ann@example.com", username="ann", first_name="Ann")
    tokens.set_token("tok-1")
    store.set_current_user(user)
    return user


class TestSessionGuard:
    """Every operation requires an authenticated session."""

    def test__update_profile__signed_out_is_401(
        self, profile: ProfileService, gateway: FakeGateway,
    ) -> None:
        result = profile.update_profile(ProfileUpdate(bio="hello"))

        assert result.success is False
        assert result.status_code == 401
        assert gateway.calls == []

    def test__get_profile__token_without_user_is_401(
        self, profile: ProfileService, tokens: TokenStore, gateway: FakeGateway,
    ) -> None:
        tokens.set_token("tok-1")
        assert profile.get_profile().status_code == 401
        assert gateway.calls == []

    def test__server_401__reports_session_expired(
        self, profile: ProfileService, gateway: FakeGateway, signed_in: UserRecord,
    ) -> None:
        gateway.reply("PUT", "/users/profile", failure(401, "Not authenticated"))

        result = profile.update_profile(ProfileUpdate(bio="hello"))

        assert result.status_code == 401
        assert result.error == SESSION_EXPIRED_MESSAGE


class TestUpdateProfile:
    """ProfileService.update_profile()"""

    def test__update_profile__sends_camel_case_and_updates_store(
        self,
        profile: ProfileService,
        gateway: FakeGateway,
        store: UserStateStore,
        signed_in: UserRecord,
    ) -> None:
        gateway.reply("PUT", "/users/profile", ok({"message": "Profile updated"}))

        result = profile.update_profile(
            ProfileUpdate(phone_number="+79123456789", profession="backend_developer"),
        )

        assert result.success is True
        assert gateway.body_of("PUT", "/users/profile") == {
            "phoneNumber": "+79123456789",
            "profession": "backend_developer",
        }
        user = store.current_user
        assert user is not None
        assert user.phone_number == "+79123456789"
        assert user.profession == "backend_developer"
        assert user.first_name == "Ann"

    def test__update_profile__subscription_plan_not_mirrored(
        self,
        profile: ProfileService,
        gateway: FakeGateway,
        store: UserStateStore,
        signed_in: UserRecord,
    ) -> None:
        gateway.reply("PUT", "/users/profile", ok({}))

        profile.update_profile(ProfileUpdate(subscription_plan=SubscriptionPlan.PRO))

        assert gateway.body_of("PUT", "/users/profile") == {"subscriptionPlan": "pro"}
        user = store.current_user
        assert user is not None
        assert user.model_dump(exclude={"updated_at"}) == signed_in.model_dump(exclude={"updated_at"})

    def test__update_profile__empty_update_rejected(
        self, profile: ProfileService, gateway: FakeGateway, signed_in: UserRecord,
    ) -> None:
        result = profile.update_profile(ProfileUpdate())

        assert result.status_code == 400
        assert gateway.calls == []

    def test__update_profile__failure_keeps_store(
        self,
        profile: ProfileService,
        gateway: FakeGateway,
        store: UserStateStore,
        signed_in: UserRecord,
    ) -> None:
        gateway.reply("PUT", "/users/profile", failure(422, "Invalid phone"))

        result = profile.update_profile(ProfileUpdate(phone_number="bad"))

        assert result.success is False
        assert result.status_code == 422
        assert result.error == "Invalid phone"
        assert store.current_user == signed_in

    def test__update_profile__network_error_is_503(
        self, profile: ProfileService, gateway: FakeGateway, signed_in: UserRecord,
    ) -> None:
        gateway.reply("PUT", "/users/profile", NetworkError("Request timeout"))

        result = profile.update_profile(ProfileUpdate(bio="x"))

        assert result.status_code == 503
        assert result.error is not None and result.error.startswith(NETWORK_ERROR_MESSAGE)


class TestGetProfile:
    """ProfileService.get_profile()"""

    def test__get_profile__merges_without_touching_identity(
        self,
        profile: ProfileService,
        gateway: FakeGateway,
        store: UserStateStore,
        signed_in: UserRecord,
    ) -> None:
        gateway.reply(
            "GET", "/users/profile",
            ok({"id": 99, "email": "other@example.com", "bio": "Hi", "city": None, "lastName": "Lee"}),
        )

        result = profile.get_profile()

        assert result.success is True
        user = store.current_user
        assert user is not None
        assert user.id == 7
        assert user.email == "ann@example.com"
        assert user.bio == "Hi"
        assert user.last_name == "Lee"


class TestSettings:
    """ProfileService.update_settings()"""

    def test__update_settings__persists_theme_and_language(
        self,
        profile: ProfileService,
        gateway: FakeGateway,
        store: UserStateStore,
        storage: ClientStorage,
        signed_in: UserRecord,
    ) -> None:
        gateway.reply("PUT", "/users/settings", ok({}))

        result = profile.update_settings(
            SettingsUpdate(theme=Theme.DARK, language="en", email_notifications=False),
        )

        assert result.success is True
        assert gateway.body_of("PUT", "/users/settings") == {
            "theme": "dark",
            "language": "en",
            "emailNotifications": False,
        }
        assert storage.get_theme() == "dark"
        assert storage.get_language() == "en"
        assert store.current_user is not None
        assert store.current_user.email_notifications is False


class TestAvatar:
    """upload_avatar / delete_avatar"""

    def test__upload_avatar__stores_url(
        self,
        profile: ProfileService,
        gateway: FakeGateway,
        store: UserStateStore,
        signed_in: UserRecord,
    ) -> None:
        upload = AvatarUpload(filename="me.png", content=b"png")
        gateway.reply("POST", "/users/avatar", ok({"avatarUrl": "/media/avatars/7.png"}))

        result = profile.upload_avatar(upload)

        assert result.success is True
        assert result.data == "/media/avatars/7.png"
        assert gateway.body_of("POST", "/users/avatar") == {"avatar": upload}
        assert store.current_user is not None
        assert store.current_user.avatar_url == "/media/avatars/7.png"

    def test__upload_avatar__invalid_file_not_sent(
        self, profile: ProfileService, gateway: FakeGateway, signed_in: UserRecord,
    ) -> None:
        upload = AvatarUpload(filename="cv.pdf", content=b"%PDF", content_type="application/pdf")

        result = profile.upload_avatar(upload)

        assert result.status_code == 400
        assert gateway.calls == []

    def test__upload_avatar__malformed_payload_is_502(
        self, profile: ProfileService, gateway: FakeGateway, signed_in: UserRecord,
    ) -> None:
        gateway.reply("POST", "/users/avatar", ok({"message": "stored"}))
        result = profile.upload_avatar(AvatarUpload(filename="me.png", content=b"png"))
        assert result.status_code == 502

    def test__delete_avatar__clears_url(
        self,
        profile: ProfileService,
        gateway: FakeGateway,
        store: UserStateStore,
        signed_in: UserRecord,
    ) -> None:
        store.update_profile({"avatar_url": "/media/avatars/7.png"})
        gateway.reply("DELETE", "/users/avatar", ok({}))

        assert profile.delete_avatar().success is True
        assert store.current_user is not None
        assert store.current_user.avatar_url is None


class TestChangePassword:
    """ProfileService.change_password()"""

    def test__change_password__sends_both_passwords(
        self, profile: ProfileService, gateway: FakeGateway, signed_in: UserRecord,
    ) -> None:
        gateway.reply("PUT", "/users/change-password", ok({"message": "Password changed"}))

        result = profile.change_password("Secret1!", "Newer2@pass")

        assert result.success is True
        assert result.data == "Password changed"
        assert gateway.body_of("PUT", "/users/change-password") == {
            "currentPassword": "Secret1!",
            "newPassword": "Newer2@pass",
        }

    def test__change_password__weak_new_password(
        self, profile: ProfileService, gateway: FakeGateway, signed_in: UserRecord,
    ) -> None:
        result = profile.change_password("Secret1!", "short")
        assert result.status_code == 400
        assert gateway.calls == []

    def test__change_password__must_differ(
        self, profile: ProfileService, gateway: FakeGateway, signed_in: UserRecord,
    ) -> None:
        result = profile.change_password("Secret1!", "Secret1!")
        assert result.error == "New password must differ from the current one"
