import json

from fastapi.testclient import TestClient


def test_api_contexts_fragments_models_cache(commerce_document) -> None:
    from spec_context.api.main import app

    client = TestClient(app)
    payload = commerce_document.to_payload()

    health_resp = client.get("/health")
    assert health_resp.status_code == 200
    assert health_resp.json()["status"] == "ok"

    context_resp = client.post("/contexts", json={"document": payload})
    assert context_resp.status_code == 200
    context = context_resp.json()
    assert context["id"].startswith("ctx_")
    assert context["document"]["businessRules"]
    assert context["relationships"]["rule-2"] == ["rule-1"]

    analysis_resp = client.post(
        "/contexts/analyze", json={"document": payload, "options": {"max_tokens": 20}}
    )
    assert analysis_resp.status_code == 200
    assert analysis_resp.json()["suggestions"]

    fragments_resp = client.post(
        "/fragments",
        json={"document": payload, "strategy": {"name": "business_rules", "max_chunk_size": 2}},
    )
    assert fragments_resp.status_code == 200
    items = fragments_resp.json()["items"]
    assert [item["metadata"]["fragment_type"] for item in items] == ["business_rules"] * 2

    validate_resp = client.post("/fragments/validate", json={"document": payload})
    assert validate_resp.status_code == 200
    assert validate_resp.json()["valid"] is True

    models_resp = client.get("/models")
    assert models_resp.status_code == 200
    assert "gpt-4" in [item["key"] for item in models_resp.json()["items"]]

    cache_resp = client.get("/cache")
    assert cache_resp.status_code == 200
    assert cache_resp.json()["entry_count"] >= 1

    cleared_resp = client.delete("/cache")
    assert cleared_resp.status_code == 200
    assert cleared_resp.json()["entry_count"] == 0


def test_api_streams_fragments_as_ndjson(document, structure) -> None:
    from spec_context.api.main import app

    client = TestClient(app)
    doc = document(structures=[structure(f"ds-{i}", name=f"Entity{i}") for i in range(1, 11)])

    resp = client.post(
        "/fragments/stream",
        json={"document": doc.to_payload(), "options": {"chunk_size": 3, "overlap": 1}},
    )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/x-ndjson")
    lines = [json.loads(line) for line in resp.text.splitlines() if line]
    assert len(lines) == 4
    assert lines[1]["boundaries"]["overlap_with"] == [lines[0]["id"]]


def test_api_maps_structural_errors_to_422(document, step) -> None:
    from spec_context.api.main import app

    client = TestClient(app)
    doc = document(steps=[step("A", depends_on=["B"]), step("B", depends_on=["A"])])

    for path in ("/fragments", "/fragments/stream"):
        resp = client.post(path, json={"document": doc.to_payload()})
        assert resp.status_code == 422
        assert set(resp.json()["detail"]["element_ids"]) == {"A", "B"}

    unknown = client.post(
        "/fragments", json={"document": doc.to_payload(), "strategy": {"name": "nope"}}
    )
    assert unknown.status_code == 422


def test_api_format_rejects_unknown_model(commerce_document) -> None:
    from spec_context.api.main import app

    client = TestClient(app)

    ok = client.post(
        "/contexts/format", json={"document": commerce_document.to_payload(), "model": "gpt-3.5-turbo"}
    )
    missing = client.post(
        "/contexts/format", json={"document": commerce_document.to_payload(), "model": "gpt-99"}
    )

    assert ok.status_code == 200
    assert ok.json()["metadata"]["target_model"] == "gpt-3.5-turbo"
    assert missing.status_code == 404
