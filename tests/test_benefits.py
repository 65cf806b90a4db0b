from storefront.modules.benefits.models import Benefit, PlanBenefit

ADMIN = "/api/v1/admin"


async def _add(session_factory, *objs):
    async with session_factory() as s:
        s.add_all(objs)
        await s.commit()
    return objs


async def test_admin_benefit_crud(client, auth_headers, admin):
    h = auth_headers(admin)
    body = {"name": "Frete grátis", "slug": "frete-gratis", "icon": "Truck", "display_order": 1}
    r = await client.post(f"{ADMIN}/benefits", json=body, headers=h)
    assert r.status_code == 201, r.text
    benefit = r.json()["data"]
    assert benefit["is_active"] is True

    r = await client.post(f"{ADMIN}/benefits", json=body, headers=h)
    assert r.status_code == 409
    assert r.json()["errorCode"] == "SLUG_TAKEN"

    r = await client.patch(f"{ADMIN}/benefits/{benefit['id']}", json={"is_active": False}, headers=h)
    assert r.status_code == 200
    assert r.json()["data"]["is_active"] is False

    r = await client.get(f"{ADMIN}/benefits", params={"is_active": "false"}, headers=h)
    assert [b["slug"] for b in r.json()["data"]] == ["frete-gratis"]

    r = await client.delete(f"{ADMIN}/benefits/{benefit['id']}", headers=h)
    assert r.status_code == 204
    r = await client.get(f"{ADMIN}/benefits/{benefit['id']}", headers=h)
    assert r.status_code == 404


async def test_benefit_rejects_unknown_icon(client, auth_headers, admin):
    body = {"name": "Brinde", "slug": "brinde", "icon": "Rocket"}
    r = await client.post(f"{ADMIN}/benefits", json=body, headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["errorCode"] == "VALIDATION_ERROR"


async def test_customer_cannot_manage_benefits(client, auth_headers, customer):
    r = await client.get(f"{ADMIN}/benefits", headers=auth_headers(customer))
    assert r.status_code == 403


async def test_admin_plan_view_links_every_benefit_disabled(client, auth_headers, admin, plan, session_factory):
    await _add(
        session_factory,
        Benefit(name="Frete grátis", slug="frete-gratis", display_order=0),
        Benefit(name="Brinde mensal", slug="brinde", display_order=1),
    )
    r = await client.get(f"{ADMIN}/plans/{plan.id}/benefits", headers=auth_headers(admin))
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["plan_name"] == "Clube"
    assert [b["slug"] for b in data["benefits"]] == ["frete-gratis", "brinde"]
    assert all(b["enabled"] is False for b in data["benefits"])


async def test_update_plan_benefits_and_public_listing(client, auth_headers, admin, plan, session_factory):
    frete, brinde, velho = await _add(
        session_factory,
        Benefit(name="Frete grátis", slug="frete-gratis", display_order=0),
        Benefit(name="Brinde mensal", slug="brinde", display_order=1),
        Benefit(name="Antigo", slug="antigo", display_order=2, is_active=False),
    )
    body = {
        "benefits": [
            {"benefit_id": frete.id, "enabled": True, "custom_value": "acima de R$ 100"},
            {"benefit_id": brinde.id, "enabled": False},
            {"benefit_id": velho.id, "enabled": True},
        ]
    }
    r = await client.put(f"{ADMIN}/plans/{plan.id}/benefits", json=body, headers=auth_headers(admin))
    assert r.status_code == 200, r.text
    # benefício inativo não aparece nem para o admin
    assert [b["slug"] for b in r.json()["data"]["benefits"]] == ["frete-gratis", "brinde"]

    r = await client.get(f"/api/v1/plans/{plan.id}/benefits")
    assert r.status_code == 200
    assert [(b["slug"], b["custom_value"]) for b in r.json()["data"]] == [("frete-gratis", "acima de R$ 100")]

    r = await client.get("/api/v1/subscriptions/plans")
    listed = r.json()["data"][0]
    assert [b["slug"] for b in listed["benefits"]] == ["frete-gratis"]


async def test_update_plan_benefits_rejects_unknown_benefit(client, auth_headers, admin, plan):
    body = {"benefits": [{"benefit_id": "nao-existe", "enabled": True}]}
    r = await client.put(f"{ADMIN}/plans/{plan.id}/benefits", json=body, headers=auth_headers(admin))
    assert r.status_code == 400
    assert r.json()["errorCode"] == "VALIDATION_ERROR"


async def test_update_benefits_of_unknown_plan(client, auth_headers, admin):
    body = {"benefits": [{"benefit_id": "x", "enabled": True}]}
    r = await client.put(f"{ADMIN}/plans/nao-existe/benefits", json=body, headers=auth_headers(admin))
    assert r.status_code == 404
    assert r.json()["errorCode"] == "PLAN_NOT_FOUND"


async def test_plans_listing_without_benefits(client, plan):
    r = await client.get("/api/v1/subscriptions/plans")
    assert r.json()["data"][0]["benefits"] == []


async def test_deleting_benefit_removes_plan_links(client, auth_headers, admin, plan, session_factory):
    (frete,) = await _add(session_factory, Benefit(name="Frete grátis", slug="frete-gratis"))
    await _add(session_factory, PlanBenefit(plan_id=plan.id, benefit_id=frete.id, enabled=True))

    r = await client.delete(f"{ADMIN}/benefits/{frete.id}", headers=auth_headers(admin))
    assert r.status_code == 204
    r = await client.get(f"/api/v1/plans/{plan.id}/benefits")
    assert r.json()["data"] == []
