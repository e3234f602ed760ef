import json

from spec_context.adapters.langchain import build_context_tools, fragments_to_documents
from spec_context.config import ContextManagerConfig, StreamingOptions
from spec_context.manager.manager import ContextManager


def test_document_to_langchain_documents(commerce_document) -> None:
    manager = ContextManager(ContextManagerConfig(chunk_size=4))

    fragments = manager.chunk_document(commerce_document)
    validation = manager.chunker.validate_relationships(fragments)
    documents = fragments_to_documents(fragments)

    assert validation.valid
    assert len(documents) == len(fragments)
    first = documents[0]
    assert first.metadata["fragment_id"] == fragments[0].id
    assert first.metadata["source_document_id"] == "commerce"
    assert json.loads(first.page_content)["metadata"]["fragmentInfo"]["index"] == 0


def test_streamed_fragments_convert_lazily(commerce_document) -> None:
    manager = ContextManager()
    cursor = manager.stream_context(commerce_document, StreamingOptions(chunk_size=2))

    documents = fragments_to_documents(cursor)

    assert cursor.exhausted
    assert sorted(e for d in documents for e in d.metadata["element_ids"]) == sorted(
        commerce_document.element_ids()
    )


def test_context_tools_run_through_manager(commerce_document) -> None:
    manager = ContextManager()
    tools = {tool.name: tool for tool in build_context_tools(manager)}

    chunk_output = tools["chunk_specification"].invoke(
        {"document": commerce_document.to_payload(), "chunk_size": 3}
    )
    context_output = tools["create_specification_context"].invoke(
        {"document": commerce_document.to_payload(), "max_tokens": 50}
    )

    lines = [json.loads(line) for line in chunk_output.splitlines()]
    assert {line["metadata"]["source_document_id"] for line in lines} == {"commerce"}
    context = json.loads(context_output)
    assert context["optimization"]["applied"] is True
    assert context["metadata"]["token_budget"] == 50
