async def test_unknown_route_uses_error_envelope(client):
    r = await client.get("/api/v1/nao-existe")
    assert r.status_code == 404
    assert r.json() == {"success": False, "error": "Not Found", "errorCode": "NOT_FOUND"}


async def test_method_not_allowed_uses_error_envelope(client):
    r = await client.delete("/api/v1/subscriptions/plans")
    assert r.status_code == 405
    body = r.json()
    assert body["success"] is False
    assert body["errorCode"] == "METHOD_NOT_ALLOWED"


async def test_validation_error_envelope(client):
    r = await client.get("/api/v1/products", params={"page": 0})
    assert r.status_code == 400
    body = r.json()
    assert body["errorCode"] == "VALIDATION_ERROR"
    assert body["details"][0]["field"] == "page"
