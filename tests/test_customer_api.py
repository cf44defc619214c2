from avatar_welcome.db.models import Customer
from avatar_welcome.db.repositories import VideosRepository
from avatar_welcome.routers.customer import (
    STATUS_DEFAULT,
    STATUS_FAILED,
    STATUS_GENERATING,
    STATUS_PREPARING,
    STATUS_SENT,
)
from avatar_welcome.schemas.providers import PlatformUser

from conftest import EXPERIENCE_ID


def _status(api_client, experience_id: str = EXPERIENCE_ID):
    return api_client.get("/api/customer/welcome-status", params={"experienceId": experience_id})


def test_welcome_status_without_customer(api_client, auth_context, make_creator):
    make_creator(platform_user_id="admin_1")
    auth_context.user_id = "user_member_1"

    response = _status(api_client)

    assert response.status_code == 200
    body = response.json()
    assert body["hasWelcomeVideo"] is False
    assert body["videoStatus"] is None
    assert body["message"] == STATUS_PREPARING
    assert body["userId"] == "user_member_1"


def test_welcome_status_messages_follow_latest_video(api_client, db_session, auth_context, make_creator, make_customer, make_video):
    customer = make_customer(make_creator(platform_user_id="admin_1"))
    auth_context.user_id = customer.platform_user_id
    video = make_video(customer, status="generating")
    repo = VideosRepository(db_session)

    expectations = [
        ("generating", STATUS_GENERATING),
        ("pending", STATUS_GENERATING),
        ("sent", STATUS_SENT),
        ("delivered", STATUS_SENT),
        ("viewed", STATUS_DEFAULT),
        ("completed", STATUS_PREPARING),
        ("sending", STATUS_PREPARING),
        ("failed", STATUS_FAILED),
    ]
    for status, message in expectations:
        repo.update_delivery(video.id, status=status, error_message="secret provider detail")
        body = _status(api_client).json()
        assert body["videoStatus"] == status
        assert body["message"] == message
        assert "secret provider detail" not in str(body)


def test_welcome_status_requires_known_tenant(api_client, auth_context, make_creator):
    make_creator()

    unknown_experience = _status(api_client, "exp_unknown")

    assert unknown_experience.status_code == 404


def test_welcome_status_does_not_leak_other_tenants(api_client, auth_context, fake_whop, make_creator, make_customer, make_video):
    first = make_creator(platform_user_id="admin_1", platform_company_id="biz_1")
    make_creator(platform_user_id="admin_2", platform_company_id="biz_2")
    customer = make_customer(first)
    make_video(customer, status="sent")
    fake_whop.experiences["exp_2"] = "biz_2"
    auth_context.user_id = customer.platform_user_id

    body = _status(api_client, "exp_2").json()

    assert body["videoStatus"] is None
    assert body["message"] == STATUS_PREPARING


def test_trigger_test_video_for_caller(api_client, db_session, auth_context, fake_whop, make_creator):
    creator = make_creator(platform_user_id="admin_1")
    auth_context.user_id = "user_member_7"
    fake_whop.users["user_member_7"] = PlatformUser(id="user_member_7", username="gus", email="gus@example.com")

    response = api_client.post("/api/customer/trigger-test-video", json={"experienceId": EXPERIENCE_ID})

    assert response.status_code == 200
    customer = db_session.query(Customer).one()
    assert customer.creator_id == creator.id
    assert customer.name == "gus"
    assert customer.plan_name == "Test Plan"
    assert customer.platform_company_id == "biz_1"
    assert response.json()["script"] == "Hi gus, welcome to Test Plan!"


def test_trigger_test_video_requires_setup(api_client, db_session, auth_context, make_creator):
    make_creator(platform_user_id="admin_1", complete=False)
    auth_context.user_id = "user_member_7"

    response = api_client.post("/api/customer/trigger-test-video", json={"experienceId": EXPERIENCE_ID})

    assert response.status_code == 400
    assert VideosRepository(db_session).list_by_status(["generating"]) == []


def test_trigger_test_video_requires_experience(api_client):
    response = api_client.post("/api/customer/trigger-test-video", json={})

    assert response.status_code == 422


def test_reset_test_status(api_client, db_session, auth_context, make_creator, make_customer, make_video):
    customer = make_customer(make_creator(platform_user_id="admin_1"))
    customer.first_video_sent = True
    db_session.commit()
    auth_context.user_id = customer.platform_user_id
    in_flight = make_video(customer, status="generating")
    done = make_video(customer, status="sent")

    response = api_client.post("/api/customer/reset-test-status", json={"experienceId": EXPERIENCE_ID})

    assert response.status_code == 200
    repo = VideosRepository(db_session)
    assert repo.get(in_flight.id).status == "failed"
    assert repo.get(in_flight.id).error_message == "Manually reset by user"
    assert repo.get(done.id).status == "sent"
    db_session.refresh(customer)
    assert customer.first_video_sent is False
