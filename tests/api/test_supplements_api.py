def test_browse_catalog_pages(client) -> None:
    first = client.get("/supplements").json()
    assert first["total"] == 19
    assert first["has_more"] is False
    assert len(first["items"]) == 19

    page = client.get("/supplements?offset=15&limit=5").json()
    assert len(page["items"]) == 4
    assert page["has_more"] is False

    head = client.get("/supplements?limit=5").json()
    assert head["has_more"] is True


def test_browse_filters(client) -> None:
    orange = client.get("/supplements?tier=Orange").json()
    assert orange["total"] == 3
    assert all(item["warnings"] for item in orange["items"])

    search = client.get("/supplements", params={"q": "sleep"}).json()
    assert {item["id"] for item in search["items"]} == {"magnesium-glycinate", "melatonin"}

    assert client.get("/supplements?tier=Purple").status_code == 422


def test_categories_featured_and_detail(client) -> None:
    assert client.get("/supplements/categories").json()[0] == "General Health"
    featured = client.get("/supplements/featured").json()
    assert [item["id"] for item in featured][:3] == ["magnesium-glycinate", "vitamin-d3", "omega-3-epa-dha"]

    detail = client.get("/supplements/omega-3-epa-dha")
    assert detail.status_code == 200
    assert detail.json()["image_url"] == "/supplements/omega-3.svg"
    assert client.get("/supplements/unicorn-dust").status_code == 404


def test_stack_crud_and_costs(client, auth_headers) -> None:
    plain = client.post(
        "/supplements/stacks",
        headers=auth_headers,
        json={"name": "Morning", "supplement_ids": ["vitamin-d3", "omega-3-epa-dha", "vitamin-d3"]},
    )
    assert plain.status_code == 201
    body = plain.json()
    assert body["supplement_ids"] == ["vitamin-d3", "omega-3-epa-dha"]
    assert body["total_cost_aed"] == 251.0
    assert body["subscription_cost_aed"] == 203.53

    favorite = client.post(
        "/supplements/stacks",
        headers=auth_headers,
        json={"name": "Evening", "supplement_ids": ["magnesium-glycinate"], "is_favorite": True},
    ).json()

    listed = client.get("/supplements/stacks", headers=auth_headers).json()["items"]
    assert [item["name"] for item in listed] == ["Evening", "Morning"]

    updated = client.patch(
        f"/supplements/stacks/{body['id']}", headers=auth_headers, json={"is_active": False, "name": " AM "}
    ).json()
    assert updated["is_active"] is False
    assert updated["name"] == "AM"

    assert client.delete(f"/supplements/stacks/{favorite['id']}", headers=auth_headers).status_code == 204
    assert client.delete(f"/supplements/stacks/{favorite['id']}", headers=auth_headers).status_code == 404


def test_stack_rejects_unknown_ids(client, auth_headers) -> None:
    response = client.post(
        "/supplements/stacks", headers=auth_headers, json={"name": "Bad", "supplement_ids": ["vitamin-d3", "nope"]}
    )
    assert response.status_code == 422
    assert response.json()["detail"] == "Unknown supplement ids: nope"


def test_user_regimen_and_recommendations(client, auth_headers) -> None:
    empty = client.get("/supplements/recommendations", headers=auth_headers).json()
    assert empty["goals"] == []
    assert empty["stacks"][0]["id"] == "foundation-stack"

    client.patch("/profile", headers=auth_headers, json={"health_goals": ["Sleep"]})
    added = client.post(
        "/supplements/mine",
        headers=auth_headers,
        json={"supplement_id": "magnesium-glycinate", "dosage": "300 mg", "timing": ["evening"]},
    )
    assert added.status_code == 201
    assert added.json()["timing"] == ["evening"]
    duplicate = client.post("/supplements/mine", headers=auth_headers, json={"supplement_id": "magnesium-glycinate"})
    assert duplicate.status_code == 409
    missing = client.post("/supplements/mine", headers=auth_headers, json={"supplement_id": "nope"})
    assert missing.status_code == 404

    recs = client.get("/supplements/recommendations", headers=auth_headers).json()
    assert recs["goals"] == ["Sleep"]
    assert recs["matched_categories"] == ["Sleep & Recovery"]
    assert [item["id"] for item in recs["supplements"]] == ["melatonin"]

    mine = client.get("/supplements/mine", headers=auth_headers).json()["items"]
    assert mine[0]["name"] == "Magnesium Glycinate"
    assert client.delete(f"/supplements/mine/{mine[0]['id']}", headers=auth_headers).status_code == 204
    assert client.get("/supplements/mine", headers=auth_headers).json()["items"] == []
