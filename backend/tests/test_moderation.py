import pytest

from conftest import REQUIREMENTS
from bantuin.errors import InvalidStateTransition, NotFound, ValidationError
from bantuin.extensions import db
from bantuin.models import AuditLog, Notification, Service, ServiceStatus, User
from bantuin.services import moderation, orders


@pytest.fixture
def pending_service(make_service, seller):
    return make_service(seller, status=ServiceStatus.PENDING, title="Wedding invitation design")


def test_approved_service_becomes_orderable(app, admin, buyer, seller, pending_service):
    assert [s.id for s in moderation.list_pending_services()] == [pending_service.id]
    with pytest.raises(ValidationError):
        orders.create_order(buyer, pending_service.id, REQUIREMENTS)

    moderation.approve_service(admin, pending_service.id)

    svc = db.session.get(Service, pending_service.id)
    assert svc.status == ServiceStatus.ACTIVE
    assert svc.is_orderable
    assert moderation.list_pending_services() == []
    assert Notification.query.filter(
        Notification.user_id == seller.id, Notification.content.contains("approved")
    ).count() == 1
    assert orders.create_order(buyer, svc.id, REQUIREMENTS).title == "Wedding invitation design"


def test_rejection_needs_reason_and_only_once(app, admin, pending_service):
    with pytest.raises(ValidationError):
        moderation.reject_service(admin, pending_service.id, "no")

    moderation.reject_service(admin, pending_service.id, "Portfolio images are missing")

    svc = db.session.get(Service, pending_service.id)
    assert svc.status == ServiceStatus.REJECTED
    assert svc.admin_notes == "Portfolio images are missing"
    assert not svc.is_orderable
    with pytest.raises(InvalidStateTransition):
        moderation.approve_service(admin, svc.id)
    with pytest.raises(NotFound):
        moderation.approve_service(admin, 424242)


def test_ban_and_unban(app, admin, seller):
    moderation.ban_user(admin, seller.id)
    assert db.session.get(User, seller.id).is_active is False
    assert AuditLog.query.filter_by(action="user_banned", target_id=seller.id).count() == 1

    moderation.unban_user(admin, seller.id)
    assert db.session.get(User, seller.id).is_active is True

    with pytest.raises(ValidationError):
        moderation.ban_user(admin, admin.id)
    with pytest.raises(NotFound):
        moderation.ban_user(admin, 424242)


def test_list_users_searches_name_and_email(app, admin, buyer, seller):
    result = moderation.list_users(search="wulan")
    assert [u["id"] for u in result["data"]] == [seller.id]

    page = moderation.list_users(limit=2, page=2)
    assert page["pagination"] == {"total": 3, "page": 2, "limit": 2, "total_pages": 2}
    assert len(page["data"]) == 1
