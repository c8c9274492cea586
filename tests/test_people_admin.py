"""
People and company administration.

Tests cover:
- Level cap: callers grant levels and home roles at or below their own
- Company check: callers only manage users of companies they manage
- Company moves (admin only), bank placement, home placement
- All-or-nothing updates
- Company feature overrides and their effect on capabilities
"""

import pytest
from werkzeug.security import generate_password_hash

from app.staffhub import create_app
from app.staffhub.db import session_scope
from app.staffhub.models import AuditEvent, Base, Company, Home, RoleMembership, User
from app.staffhub.modules.people.service import ViewerReach, within_cap


class TestLevelCap:
    def test_same_or_lower_level_is_within_cap(self):
        assert within_cap("ADMIN", "ADMIN") is True
        assert within_cap("COMPANY", "MANAGER") is True
        assert within_cap("MANAGER", "MANAGER") is True
        assert within_cap("MANAGER", "STAFF") is True

    def test_higher_level_is_outside_cap(self):
        assert within_cap("COMPANY", "ADMIN") is False
        assert within_cap("MANAGER", "COMPANY") is False
        assert within_cap("STAFF", "MANAGER") is False


class TestViewerReach:
    def test_company_context(self):
        reach = ViewerReach(is_admin=False, company_ids=frozenset({"a"}), manager_company_ids=frozenset({"b"}))
        assert reach.can_manage("a") is True
        assert reach.can_manage("b") is True
        assert reach.can_manage("c") is False
        assert reach.can_manage(None) is False
        assert reach.level_in("a") == "COMPANY"
        assert reach.level_in("b") == "MANAGER"

    def test_admin_manages_everything(self):
        reach = ViewerReach(is_admin=True, company_ids=frozenset(), manager_company_ids=frozenset())
        assert reach.can_manage("anything") is True
        assert reach.can_manage(None) is True
        assert reach.level_in("anything") == "ADMIN"


# ─────────────────────────────────────────────────────────────────────────────
# Endpoints
# ─────────────────────────────────────────────────────────────────────────────


def _user(s, email, *memberships):
    u = User(email=email, password_hash=generate_password_hash("pw"), is_active=True)
    s.add(u)
    s.flush()
    for role, company_id, home_id in memberships:
        s.add(RoleMembership(user_id=u.id, role=role, company_id=company_id, home_id=home_id))
    return u


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def ids(app):
    out = {}
    with session_scope(app) as s:
        ca = Company(name="Acorn Care")
        cb = Company(name="Birch Homes")
        s.add_all([ca, cb])
        s.flush()
        ha1 = Home(company_id=ca.id, name="Oak House")
        ha2 = Home(company_id=ca.id, name="Elm House")
        hb1 = Home(company_id=cb.id, name="Pine House")
        s.add_all([ha1, ha2, hb1])
        s.flush()

        out.update(company_a=ca.id, company_b=cb.id, home_a1=ha1.id, home_a2=ha2.id, home_b1=hb1.id)
        out["admin"] = _user(s, "admin@example.com", ("ADMIN", None, None)).id
        out["company"] = _user(s, "company@example.com", ("COMPANY", ca.id, None)).id
        out["company_peer"] = _user(s, "peer@example.com", ("COMPANY", ca.id, None)).id
        out["manager"] = _user(s, "manager@example.com", ("MANAGER", ca.id, ha1.id)).id
        out["staff"] = _user(s, "staff@example.com", ("STAFF", ca.id, ha1.id)).id
        out["staff_b"] = _user(s, "staff-b@example.com", ("STAFF", cb.id, hb1.id)).id
    return out


@pytest.fixture()
def client(app, ids):
    return app.test_client()


def _auth(client, email):
    r = client.post("/auth/token", json={"email": email, "password": "pw"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json['accessToken']}"}


def _update(client, email, body):
    return client.patch("/api/admin/people/update", json=body, headers=_auth(client, email))


def _memberships(app, user_id):
    with session_scope(app) as s:
        rows = (
            s.query(RoleMembership)
            .filter(RoleMembership.user_id == user_id)
            .order_by(RoleMembership.id.asc())
            .all()
        )
        return [(m.role, m.company_id, m.home_id) for m in rows]


def test_staff_cannot_administer_people(client, ids):
    r = _update(client, "staff@example.com", {"userId": ids["staff"], "fullName": "Me"})
    assert r.status_code == 403


def test_manager_promotes_staff_in_their_home(client, ids):
    app = client.application
    r = _update(
        client,
        "manager@example.com",
        {"userId": ids["staff"], "setHomeRole": {"homeId": ids["home_a1"], "role": "MANAGER"}},
    )
    assert r.status_code == 200
    assert r.json["person"]["level"] == "MANAGER"
    assert _memberships(app, ids["staff"]) == [("MANAGER", ids["company_a"], ids["home_a1"])]

    caps = client.get("/api/me/capabilities", headers=_auth(client, "staff@example.com")).json
    assert caps["level"] == "MANAGER"

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "people.update").count() == 1


def test_manager_cannot_grant_company_level(client, ids):
    app = client.application
    r = _update(
        client,
        "manager@example.com",
        {"userId": ids["staff"], "setLevel": {"level": "COMPANY", "companyId": ids["company_a"]}},
    )
    assert r.status_code == 403
    assert r.json["error"] == "You are not allowed to assign that role."
    assert _memberships(app, ids["staff"]) == [("STAFF", ids["company_a"], ids["home_a1"])]


def test_company_cannot_grant_admin(client, ids):
    r = _update(client, "company@example.com", {"userId": ids["staff"], "setLevel": {"level": "ADMIN", "companyId": None}})
    assert r.status_code == 403
    assert _memberships(client.application, ids["staff"]) == [("STAFF", ids["company_a"], ids["home_a1"])]


def test_cannot_manage_users_of_another_company(client, ids):
    app = client.application
    r = _update(client, "manager@example.com", {"userId": ids["staff_b"], "fullName": "Renamed"})
    assert r.status_code == 403
    assert r.json["error"] == "You do not have permission to manage this user in that company."

    r = _update(
        client,
        "company@example.com",
        {"userId": ids["staff_b"], "setLevel": {"level": "STAFF", "companyId": ids["company_a"]}},
    )
    assert r.status_code == 403

    r = _update(
        client,
        "manager@example.com",
        {"userId": ids["staff"], "setLevel": {"level": "STAFF", "companyId": ids["company_b"]}},
    )
    assert r.status_code == 403

    with session_scope(app) as s:
        assert s.get(User, ids["staff_b"]).full_name is None


def test_cannot_manage_user_above_own_level(client, ids):
    r = _update(
        client,
        "manager@example.com",
        {"userId": ids["company_peer"], "setLevel": {"level": "STAFF", "companyId": ids["company_a"]}},
    )
    assert r.status_code == 403
    assert r.json["error"] == "You cannot manage a user above your own level."
    assert _memberships(client.application, ids["company_peer"]) == [("COMPANY", ids["company_a"], None)]


def test_company_grants_and_removes_company_level(client, ids):
    app = client.application
    r = _update(
        client,
        "company@example.com",
        {"userId": ids["staff"], "setLevel": {"level": "COMPANY", "companyId": ids["company_a"]}},
    )
    assert r.status_code == 200
    assert r.json["person"]["level"] == "COMPANY"

    r = _update(client, "company@example.com", {"userId": ids["staff"], "setLevel": {"level": "STAFF"}})
    assert r.status_code == 200
    assert r.json["person"]["level"] == "STAFF"
    assert _memberships(app, ids["staff"]) == [("STAFF", ids["company_a"], ids["home_a1"])]


def test_demoting_company_only_user_keeps_company_membership(client, ids):
    r = _update(client, "company@example.com", {"userId": ids["company_peer"], "setLevel": {"level": "MANAGER"}})
    assert r.status_code == 200
    assert _memberships(client.application, ids["company_peer"]) == [("STAFF", ids["company_a"], None)]


def test_only_admin_moves_user_to_another_company(client, ids):
    app = client.application
    r = _update(client, "company@example.com", {"userId": ids["staff"], "setCompany": {"companyId": ids["company_a"]}})
    assert r.status_code == 403
    assert r.json["error"] == "Only admins can change a user's company."

    r = _update(client, "admin@example.com", {"userId": ids["staff"], "setCompany": {"companyId": ids["company_b"]}})
    assert r.status_code == 200
    assert _memberships(app, ids["staff"]) == [("STAFF", ids["company_b"], None)]

    r = _update(client, "admin@example.com", {"userId": ids["staff"], "setCompany": {"companyId": "no-such-company"}})
    assert r.status_code == 404


def test_bank_placement_must_match_company(client, ids):
    r = _update(client, "company@example.com", {"userId": ids["staff"], "setBank": {"companyId": ids["company_b"]}})
    assert r.status_code == 400
    assert r.json["error"] == "Bank membership must match the user's company."


def test_moving_staff_to_the_bank_makes_them_bank_only(client, ids):
    app = client.application
    r = _update(
        client,
        "company@example.com",
        {
            "userId": ids["staff"],
            "setBank": {"companyId": ids["company_a"]},
            "clearHome": {"homeId": ids["home_a1"]},
        },
    )
    assert r.status_code == 200
    assert r.json["person"]["bankCompanyIds"] == [ids["company_a"]]
    assert _memberships(app, ids["staff"]) == []

    caps = client.get("/api/me/capabilities", headers=_auth(client, "staff@example.com")).json
    assert caps["bankOnly"] is True
    assert caps["nav"]["budgets"] is False

    r = _update(
        client,
        "company@example.com",
        {"userId": ids["staff"], "setHome": {"homeId": ids["home_a2"], "clearBankForCompany": ids["company_a"]}},
    )
    assert r.status_code == 200
    assert r.json["person"]["bankCompanyIds"] == []
    assert _memberships(app, ids["staff"]) == [("STAFF", ids["company_a"], ids["home_a2"])]


def test_home_must_belong_to_the_company(client, ids):
    r = _update(client, "company@example.com", {"userId": ids["staff"], "setHome": {"homeId": ids["home_b1"]}})
    assert r.status_code == 400
    assert r.json["error"] == "Home does not belong to this company."


def test_manager_homes_replace_set(client, ids):
    app = client.application
    r = _update(
        client,
        "company@example.com",
        {"userId": ids["manager"], "setManagerHomes": {"homeIds": [ids["home_a2"], ids["home_b1"]]}},
    )
    assert r.status_code == 200
    assert _memberships(app, ids["manager"]) == [("MANAGER", ids["company_a"], ids["home_a2"])]


def test_rejected_step_rolls_back_the_whole_update(client, ids):
    app = client.application
    r = _update(
        client,
        "manager@example.com",
        {
            "userId": ids["staff"],
            "fullName": "Should Not Stick",
            "setHomeRole": {"homeId": ids["home_a1"], "role": "MANAGER"},
            "setLevel": {"level": "COMPANY", "companyId": ids["company_a"]},
        },
    )
    assert r.status_code == 403
    assert _memberships(app, ids["staff"]) == [("STAFF", ids["company_a"], ids["home_a1"])]
    with session_scope(app) as s:
        assert s.get(User, ids["staff"]).full_name is None
        assert s.query(AuditEvent).filter(AuditEvent.action == "people.update").count() == 0


@pytest.mark.parametrize(
    "body, status",
    [
        ({"fullName": "x"}, 400),
        ({"userId": "1"}, 400),
        ({"userId": 99999}, 404),
        ({"userId": 1, "setHomeRole": {"homeId": "h", "role": "OWNER"}}, 400),
        ({"userId": 1, "setLevel": {"level": "SUPERUSER"}}, 400),
        ({"userId": 1, "setBank": "company"}, 400),
    ],
)
def test_people_update_validates_payload(client, ids, body, status):
    r = _update(client, "admin@example.com", body)
    assert r.status_code == status
    assert "error" in r.json


# ─────────────────────────────────────────────────────────────────────────────
# Company features
# ─────────────────────────────────────────────────────────────────────────────


def test_admin_toggles_and_resets_company_features(client, ids):
    admin = _auth(client, "admin@example.com")
    base = f"/api/admin/companies/{ids['company_a']}/features"

    r = client.get(base, headers=admin)
    assert r.status_code == 200
    assert all(r.json["features"].values())

    r = client.put(f"{base}/ROTAS", json={"enabled": False}, headers=admin)
    assert r.status_code == 200
    assert r.json["features"]["ROTAS"] is False

    caps = client.get("/api/me/capabilities", headers=_auth(client, "staff@example.com")).json
    assert caps["features"]["ROTAS"] is False

    r = client.delete(base, headers=admin)
    assert r.status_code == 200
    assert all(r.json["features"].values())


def test_company_features_are_admin_only_and_validated(client, ids):
    base = f"/api/admin/companies/{ids['company_a']}/features"
    r = client.put(f"{base}/ROTAS", json={"enabled": False}, headers=_auth(client, "company@example.com"))
    assert r.status_code == 403

    admin = _auth(client, "admin@example.com")
    assert client.put(f"{base}/TELEPORT", json={"enabled": False}, headers=admin).status_code == 400
    assert client.put(f"{base}/ROTAS", json={"enabled": "no"}, headers=admin).status_code == 400
    assert client.get("/api/admin/companies/missing/features", headers=admin).status_code == 404
