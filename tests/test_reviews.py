COMMENT = "Muy buen producto, llego a tiempo."


def _review(client, headers, producto_id=1, calificacion=5, comentario=COMMENT):
    payload = {"producto_id": producto_id, "calificacion": calificacion}
    if comentario is not None:
        payload["comentario"] = comentario
    return client.post("/reviews", json=payload, headers=headers)


def test_create_review(reviews_client, owner_headers):
    resp = _review(reviews_client, owner_headers)
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    assert data["producto_id"] == 1
    assert data["usuario_id"] == "user-1"
    assert data["calificacion"] == 5
    assert data["comentario"] == COMMENT


def test_duplicate_review_conflicts(reviews_client, owner_headers):
    assert _review(reviews_client, owner_headers).status_code == 201
    resp = _review(reviews_client, owner_headers, calificacion=3)
    assert resp.status_code == 409


def test_review_validation(reviews_client, owner_headers):
    assert _review(reviews_client, owner_headers, calificacion=6).status_code == 400
    assert _review(reviews_client, owner_headers, comentario="corto").status_code == 400
    assert _review(reviews_client, owner_headers, comentario="<script>alert(1)</script> hola").status_code == 400


def test_reviews_require_token(reviews_client):
    assert reviews_client.get("/reviews").status_code == 401


def test_list_and_filter(reviews_client, owner_headers, other_headers):
    _review(reviews_client, owner_headers, producto_id=1, calificacion=5)
    _review(reviews_client, owner_headers, producto_id=2, calificacion=2)
    _review(reviews_client, other_headers, producto_id=1, calificacion=3)

    body = reviews_client.get("/reviews", headers=owner_headers).json()
    assert body["total"] == 3

    body = reviews_client.get("/reviews", params={"producto_id": 1}, headers=owner_headers).json()
    assert body["total"] == 2

    body = reviews_client.get(
        "/reviews", params={"calificacion_min": 3, "sort": "calificacion", "order": "ASC"}, headers=owner_headers
    ).json()
    assert [r["calificacion"] for r in body["data"]] == [3, 5]

    resp = reviews_client.get("/reviews", params={"calificacion_min": 4, "calificacion_max": 2}, headers=owner_headers)
    assert resp.status_code == 400


def test_product_reviews_average(reviews_client, owner_headers, other_headers):
    _review(reviews_client, owner_headers, producto_id=7, calificacion=4)
    _review(reviews_client, other_headers, producto_id=7, calificacion=5)

    body = reviews_client.get("/reviews/product/7", headers=owner_headers).json()
    assert body["total"] == 2
    assert body["promedio"] == 4.5

    empty = reviews_client.get("/reviews/product/8", headers=owner_headers).json()
    assert empty["total"] == 0
    assert empty["promedio"] == 0.0
    assert empty["data"] == []


def test_update_review_owner_only(reviews_client, owner_headers, other_headers, admin_headers):
    rid = _review(reviews_client, owner_headers).json()["data"]["calificacion_id"]

    assert reviews_client.put(f"/reviews/{rid}", json={"calificacion": 1}, headers=other_headers).status_code == 403
    resp = reviews_client.put(f"/reviews/{rid}", json={"calificacion": 3}, headers=owner_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["calificacion"] == 3

    resp = reviews_client.put(f"/reviews/{rid}", json={"calificacion": 4}, headers=admin_headers)
    assert resp.status_code == 200
    assert reviews_client.put(f"/reviews/{rid}", json={}, headers=owner_headers).status_code == 400


def test_delete_review(reviews_client, owner_headers, other_headers):
    rid = _review(reviews_client, owner_headers).json()["data"]["calificacion_id"]
    assert reviews_client.delete(f"/reviews/{rid}", headers=other_headers).status_code == 403
    assert reviews_client.delete(f"/reviews/{rid}", headers=owner_headers).status_code == 200
    assert reviews_client.get(f"/reviews/{rid}", headers=owner_headers).status_code == 404


def test_reviews_health(reviews_client):
    assert reviews_client.get("/health").json()["service"] == "reviews-service"
