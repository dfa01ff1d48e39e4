from conftest import API, signup, wrong_otp
from researcher_hut.services.pending_actions import FlowType

NEW_EMAIL = "reader.new@example.com"


def send_change(client, user, new_email=NEW_EMAIL, current_email=None):
    return client.post(f"{API}/auth/email/send-otp", json={
        "userId": user["id"],
        "currentEmail": current_email or user["email"],
        "newEmail": new_email,
    })


def verify_change(client, user, otp):
    return client.post(f"{API}/auth/email/verify", json={"userId": user["id"], "otp": otp})


def test_email_change_round_trip(client, notifier, registered_user):
    notifier.sent.clear()
    r = send_change(client, registered_user)
    assert r.status_code == 200
    assert r.json() == {"message": "OTP sent to your new email address."}
    assert notifier.recipients() == [NEW_EMAIL]

    r = verify_change(client, registered_user, notifier.last_otp(NEW_EMAIL))
    assert r.status_code == 200, r.text
    assert r.json() == {"success": True, "message": "Email updated successfully", "email": NEW_EMAIL}

    user = client.get(f"{API}/users/{registered_user['id']}").json()
    assert user["email"] == NEW_EMAIL


def test_email_already_used_by_another_account(client, notifier, store, registered_user):
    other = signup(client, notifier, "other@example.com", "other_reader")
    notifier.sent.clear()

    r = send_change(client, registered_user, new_email=other["email"])
    assert r.status_code == 400
    assert r.json() == {"error": "Email already in use by another account"}
    assert notifier.sent == []
    assert store.get(registered_user["id"], FlowType.email_change) is None


def test_current_email_must_match(client, notifier, registered_user):
    r = send_change(client, registered_user, current_email="someone@example.com")
    assert r.status_code == 400
    assert r.json() == {"error": "Current email does not match our records"}


def test_unknown_user_gets_the_same_mismatch_error(client):
    r = send_change(client, {"id": "missing-user", "email": "ghost@example.com"})
    assert r.status_code == 400
    assert r.json() == {"error": "Current email does not match our records"}


def test_new_email_must_differ(client, registered_user):
    r = send_change(client, registered_user, new_email=registered_user["email"].upper())
    assert r.status_code == 400
    assert r.json() == {"error": "New email must be different from the current email"}


def test_user_id_is_required(client, registered_user):
    r = send_change(client, {"id": "", "email": registered_user["email"]})
    assert r.status_code == 400
    assert r.json() == {"error": "User ID is required"}


def test_wrong_code_leaves_email_unchanged(client, notifier, registered_user):
    send_change(client, registered_user)
    otp = notifier.last_otp(NEW_EMAIL)

    assert verify_change(client, registered_user, wrong_otp(otp)).status_code == 401
    assert verify_change(client, registered_user, otp).status_code == 401

    user = client.get(f"{API}/users/{registered_user['id']}").json()
    assert user["email"] == registered_user["email"]


def test_new_email_taken_before_verification(client, notifier, registered_user):
    send_change(client, registered_user)
    otp = notifier.last_otp(NEW_EMAIL)
    signup(client, notifier, NEW_EMAIL, "fast_reader")

    r = verify_change(client, registered_user, otp)
    assert r.status_code == 400
    assert r.json() == {"error": "Email already in use by another account"}
