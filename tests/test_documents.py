import random

from app.services import documents


def test_individual_purchase_checklist() -> None:
    docs = documents.initial_documents("individual", "purchase")

    assert [doc.id for doc in docs.individual] == [doc_id for doc_id, _ in documents.INDIVIDUAL_DOCUMENTS]
    assert docs.company is None
    assert [doc.name for doc in docs.property] == ["Purchase Agreement"]
    assert all(doc.status == "missing" for doc in docs.individual + docs.property)


def test_company_refinance_checklist_marks_scope_of_work_optional() -> None:
    docs = documents.initial_documents("company", "refinance")

    assert docs.individual is None
    assert len(docs.company) == 9
    by_name = {doc.name: doc for doc in docs.property}
    assert set(by_name) == {"Deed", "Scope of Work"}
    assert by_name["Scope of Work"].is_optional is True
    assert by_name["Deed"].is_optional is False


def test_both_borrower_types_get_both_checklists() -> None:
    docs = documents.initial_documents("both", "purchase")

    assert len(docs.individual) == 7
    assert len(docs.company) == 9


def test_build_stages_orders_stages_and_unlocks_only_the_first() -> None:
    stages = documents.build_stages("individual", "purchase")

    assert [stage.name for stage in stages] == list(documents.STAGE_NAMES)
    assert [stage.id for stage in stages] == [1, 2, 3, 4, 5, 6]
    assert stages[0].status == "in_progress"
    assert all(stage.status == "locked" for stage in stages[1:])
    assert [doc.name for doc in stages[1].documents.general] == ["Risk Matrix"]


def test_closing_stage_documents_carry_checklist_flags() -> None:
    closing = documents.stage_documents(documents.CLOSING).general

    assert len(closing) == 10
    assert {doc.category for doc in closing} == {"disclosures", "loan_docs"}
    assert all(doc.sent is False and doc.signed is False and doc.filled is False for doc in closing)


def test_unknown_stage_has_no_documents() -> None:
    assert documents.stage_documents("Servicing").general is None


def test_custom_document_is_flagged_and_trimmed() -> None:
    doc = documents.new_custom_document("  Insurance binder ")

    assert doc.name == "Insurance binder"
    assert doc.is_custom is True
    assert doc.id.startswith("doc-")


def test_generate_prospect_code_uses_prefix_and_four_digits() -> None:
    code = documents.generate_prospect_code("HKF-ML", random.Random(7))

    assert code.startswith("HKF-ML")
    suffix = code[len("HKF-ML"):]
    assert len(suffix) == 4 and suffix.isdigit()


def test_document_storage_path_sanitises_stage_name() -> None:
    path = documents.document_storage_path("HKF-ML1234", "p-1", "Pre-validation", "ind-doc-1", "id.pdf")

    assert path == "HKF-ML1234/Pre-validation/ind-doc-1-id.pdf"


def test_document_storage_path_falls_back_to_prospect_id() -> None:
    path = documents.document_storage_path(None, "p-1", "Title Work", "tw-doc-1", "commitment.pdf")

    assert path == "p-1/Title_Work/tw-doc-1-commitment.pdf"


def test_property_photo_storage_path_is_scoped_to_property() -> None:
    path = documents.property_photo_storage_path("HKF-ML1234", "p-1", "prop-1", "front.jpg")

    assert path.startswith("HKF-ML1234/properties/prop-1/")
    assert path.endswith("-front.jpg")
