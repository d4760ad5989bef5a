from app.services.vector_search import SearchMatch, VectorSearchService, build_context


def row(id, similarity, source="text", page_number=None):
    return {
        "id": id,
        "manual_id": 1,
        "manual_title": "320D Service Manual",
        "source": source,
        "page_number": page_number,
        "content": f"content {id}",
        "image_url": None,
        "similarity": similarity,
    }


def test_blank_query_returns_nothing(db, provider):
    service = VectorSearchService(db, provider, company_id=1)

    assert service.search("") == []
    assert service.search("   ") == []
    assert provider.embed_calls == []


def test_search_with_no_stored_embeddings_returns_empty_list(db, provider, monkeypatch):
    service = VectorSearchService(db, provider, company_id=1)
    monkeypatch.setattr(service, "_match", lambda embedding: [])

    assert service.search("hydraulic pump noise") == []
    assert provider.embed_calls == ["hydraulic pump noise"]


def test_search_call_failure_degrades_to_empty(db, provider):
    # SQLite has no match_manual_embeddings function, so the call itself fails
    service = VectorSearchService(db, provider, company_id=1)

    assert service.search("hydraulic pump noise") == []


def test_query_embedding_failure_degrades_to_empty(db, provider):
    provider.fail_embed_on = {1}
    service = VectorSearchService(db, provider, company_id=1)

    assert service.search("hydraulic pump noise") == []


def test_matches_sorted_by_similarity(db, provider, monkeypatch):
    service = VectorSearchService(db, provider, company_id=1)
    monkeypatch.setattr(
        service, "_match",
        lambda embedding: [row(1, 0.61), row(2, 0.93, "page", 4), row(3, 0.72)],
    )

    matches = service.search("boom drift")

    assert [m.id for m in matches] == [2, 3, 1]
    assert matches[0].page_number == 4
    assert matches[0].source == "page"


def test_match_parameters_pin_provider_and_model(db, provider, monkeypatch):
    captured = {}

    class Result:
        def mappings(self):
            return self

        def all(self):
            return []

    def fake_execute(statement, params):
        captured.update(params)
        return Result()

    monkeypatch.setattr(db, "execute", fake_execute)
    VectorSearchService(db, provider, company_id=7, match_threshold=0.5, match_count=5).search("boom")

    assert captured["company_id"] == 7
    assert captured["match_threshold"] == 0.5
    assert captured["match_count"] == 5
    assert captured["provider"] == "openai"
    assert captured["model"] == "text-embedding-3-small"
    assert captured["query_embedding"].startswith("[")


def test_build_context_labels_pages():
    matches = [
        SearchMatch(1, 1, "320D Service Manual", "page", "Pump diagram", 0.9, page_number=12),
        SearchMatch(2, 1, "320D Service Manual", "text", "Torque to 45 Nm", 0.8),
    ]

    context = build_context(matches)

    assert "[320D Service Manual, page 12]\nPump diagram" in context
    assert "[320D Service Manual]\nTorque to 45 Nm" in context
    assert build_context([]) == ""
