from conftest import API, ADDRESS


def add(client, headers, **overrides):
    return client.post(f"{API}/addresses", json={**ADDRESS, **overrides}, headers=headers)


def test_first_address_becomes_default(client, customer):
    response = add(client, customer["headers"])
    assert response.status_code == 201
    assert response.json()["data"]["is_default"] is True

    second = add(client, customer["headers"], city="Berlin").json()["data"]
    assert second["is_default"] is False


def test_new_default_replaces_old_one(client, customer):
    headers = customer["headers"]
    first = add(client, headers).json()["data"]
    second = add(client, headers, city="Berlin", is_default=True).json()["data"]

    listed = client.get(f"{API}/addresses", headers=headers).json()["data"]
    assert [a["id"] for a in listed] == [second["id"], first["id"]]
    assert [a["is_default"] for a in listed] == [True, False]


def test_update_address(client, customer):
    headers = customer["headers"]
    first = add(client, headers).json()["data"]
    second = add(client, headers, city="Berlin").json()["data"]

    response = client.put(f"{API}/addresses/{second['id']}", json={**ADDRESS, "city": "Munich", "is_default": True}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["city"] == "Munich"

    listed = {a["id"]: a for a in client.get(f"{API}/addresses", headers=headers).json()["data"]}
    assert listed[second["id"]]["is_default"] is True
    assert listed[first["id"]]["is_default"] is False


def test_partial_address_update(client, customer):
    headers = customer["headers"]
    address = add(client, headers).json()["data"]

    response = client.put(f"{API}/addresses/{address['id']}", json={"city": "Berlin"}, headers=headers)
    assert response.status_code == 200
    updated = response.json()["data"]
    assert updated["city"] == "Berlin"
    assert updated["street"] == ADDRESS["street"]
    assert updated["recipient_name"] == ADDRESS["recipient_name"]


def test_set_default_address_alone(client, customer):
    headers = customer["headers"]
    first = add(client, headers, is_default=True).json()["data"]
    second = add(client, headers, city="Berlin").json()["data"]

    response = client.put(f"{API}/addresses/{second['id']}", json={"is_default": True}, headers=headers)
    assert response.status_code == 200
    assert response.json()["data"]["city"] == "Berlin"

    listed = {a["id"]: a for a in client.get(f"{API}/addresses", headers=headers).json()["data"]}
    assert listed[second["id"]]["is_default"] is True
    assert listed[first["id"]]["is_default"] is False


def test_partial_update_rejects_blank_fields(client, customer):
    headers = customer["headers"]
    address = add(client, headers).json()["data"]
    response = client.put(f"{API}/addresses/{address['id']}", json={"street": ""}, headers=headers)
    assert response.status_code == 400


def test_addresses_are_private(client, customer, other_customer):
    address_id = add(client, customer["headers"]).json()["data"]["id"]

    assert client.get(f"{API}/addresses", headers=other_customer["headers"]).json()["data"] == []

    response = client.put(f"{API}/addresses/{address_id}", json=ADDRESS, headers=other_customer["headers"])
    assert response.status_code == 403
    assert response.json()["error"] == "Not authorized to access this address"

    assert client.delete(f"{API}/addresses/{address_id}", headers=other_customer["headers"]).status_code == 403


def test_delete_address(client, customer):
    headers = customer["headers"]
    address_id = add(client, headers).json()["data"]["id"]
    assert client.delete(f"{API}/addresses/{address_id}", headers=headers).status_code == 200
    assert client.delete(f"{API}/addresses/{address_id}", headers=headers).status_code == 404


def test_address_requires_fields(client, customer):
    response = client.post(f"{API}/addresses", json={"city": "Hamburg"}, headers=customer["headers"])
    assert response.status_code == 400
    fields = {err["field"] for err in response.json()["errors"]}
    assert {"recipient_name", "phone", "province", "street"} <= fields
