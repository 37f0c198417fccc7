"""Tests for response validation and submission."""

import json

import pytest
from pydantic import ValidationError

from formflow.db.database import get_db
from formflow.errors import NotFoundError, ResponseValidationError
from formflow.models import FormCreate, FormSchema, ResponseFilter, ResponseSearch, TaskCreate
from formflow.services.submission import (
    EMAIL_MESSAGE,
    NUMBER_MESSAGE,
    OPTION_MESSAGE,
    RELATION_MESSAGE,
    REQUIRED_MESSAGE,
    ResponseSubmissionService,
)


def _schema(*fields: dict) -> FormSchema:
    return FormSchema.model_validate({"title": "Order", "fields": list(fields)})


class TestValidate:
    """Tests for per-field validation."""

    @pytest.mark.asyncio
    async def test_required_fields(self, store):
        schema = _schema(
            {"id": "name", "type": "text", "label": "Name", "required": True},
            {"id": "agree", "type": "checkbox", "label": "Agree", "required": True},
            {"id": "note", "type": "textarea", "label": "Note"},
        )

        errors = await ResponseSubmissionService(store).validate(
            schema, {"name": "   ", "agree": False}
        )

        assert errors == {"name": REQUIRED_MESSAGE, "agree": REQUIRED_MESSAGE}

    @pytest.mark.asyncio
    async def test_formats(self, store):
        schema = _schema(
            {"id": "email", "type": "email", "label": "Email"},
            {"id": "qty", "type": "number", "label": "Qty"},
            {"id": "size", "type": "select", "label": "Size", "options": ["S", "M"]},
        )

        errors = await ResponseSubmissionService(store).validate(
            schema, {"email": "not-an-email", "qty": "many", "size": "XL"}
        )

        assert errors == {
            "email": EMAIL_MESSAGE,
            "qty": NUMBER_MESSAGE,
            "size": OPTION_MESSAGE,
        }

    @pytest.mark.asyncio
    async def test_valid_data(self, store):
        schema = _schema(
            {"id": "email", "type": "email", "label": "Email", "required": True},
            {"id": "qty", "type": "number", "label": "Qty"},
            {"id": "size", "type": "radio", "label": "Size", "options": ["S", "M"]},
        )

        errors = await ResponseSubmissionService(store).validate(
            schema, {"email": "jane@example.com", "qty": "3.5", "size": "M"}
        )

        assert errors == {}

    @pytest.mark.asyncio
    async def test_relation_value_must_be_a_target_response(self, store, customer_form):
        alice = await store.create_response(customer_form.id, {"name": "Alice"})
        schema = _schema(
            {"id": "customer", "type": "relation", "label": "Customer",
             "relationConfig": {"formId": customer_form.id, "displayField": "name"}},
        )
        service = ResponseSubmissionService(store)

        assert await service.validate(schema, {"customer": alice.id}) == {}
        assert await service.validate(schema, {"customer": "someone-else"}) == {
            "customer": RELATION_MESSAGE
        }


class TestSubmit:
    """Tests for storing responses."""

    @pytest.mark.asyncio
    async def test_submit_stores_response(self, store, customer_form):
        response = await ResponseSubmissionService(store).submit(
            customer_form.id, {"name": "Alice", "email": "alice@example.com"}, created_by="u1"
        )

        stored = await store.get_response(response.id)
        assert stored.data == {"name": "Alice", "email": "alice@example.com"}
        assert stored.created_by == "u1"

    @pytest.mark.asyncio
    async def test_invalid_data_is_not_stored(self, store, customer_form):
        with pytest.raises(ResponseValidationError) as exc_info:
            await ResponseSubmissionService(store).submit(customer_form.id, {"email": "x"})

        assert set(exc_info.value.errors) == {"name", "email"}
        assert await store.list_responses(customer_form.id) == []

    @pytest.mark.asyncio
    async def test_submit_against_task_links_response(self, store, customer_form):
        task = await store.create_task(TaskCreate(assigned_to="u2"))

        response = await ResponseSubmissionService(store).submit(
            customer_form.id, {"name": "Alice"}, created_by="u1", task_id=task.id
        )

        linked = await store.get_responses_for_tasks([task.id])
        assert [r.id for r in linked[task.id]] == [response.id]
        assert await store.list_submitted_task_ids("u1") == [task.id]

    @pytest.mark.asyncio
    async def test_unknown_task_rejected_before_storing(self, store, customer_form):
        with pytest.raises(NotFoundError):
            await ResponseSubmissionService(store).submit(
                customer_form.id, {"name": "Alice"}, task_id="nope"
            )

        assert await store.list_responses(customer_form.id) == []

    @pytest.mark.asyncio
    async def test_unknown_form(self, store):
        with pytest.raises(NotFoundError):
            await ResponseSubmissionService(store).submit("nope", {})

    @pytest.mark.asyncio
    async def test_form_without_required_fields_accepts_empty_data(self, store):
        form = await store.create_form(
            FormCreate(
                title="Feedback",
                form_schema=_schema({"id": "note", "type": "textarea", "label": "Note"}),
            )
        )

        response = await ResponseSubmissionService(store).submit(form.id, {})

        assert response.form_id == form.id


class TestUpdateResponse:
    """Tests for editing a stored response."""

    @pytest.mark.asyncio
    async def test_update_replaces_data(self, store, customer_form):
        service = ResponseSubmissionService(store)
        response = await service.submit(customer_form.id, {"name": "Alice"})

        updated = await service.update(
            customer_form.id, response.id, {"name": "Alicia", "email": "a@example.com"}
        )

        assert updated.data == {"name": "Alicia", "email": "a@example.com"}
        assert updated.created_at == response.created_at
        stored = await store.get_response(response.id)
        assert stored.data == updated.data

    @pytest.mark.asyncio
    async def test_invalid_update_keeps_stored_data(self, store, customer_form):
        """Edits are validated against the form like submissions."""
        service = ResponseSubmissionService(store)
        response = await service.submit(customer_form.id, {"name": "Alice"})

        with pytest.raises(ResponseValidationError) as exc_info:
            await service.update(customer_form.id, response.id, {"email": "nope"})

        assert set(exc_info.value.errors) == {"name", "email"}
        assert (await store.get_response(response.id)).data == {"name": "Alice"}

    @pytest.mark.asyncio
    async def test_response_of_another_form_is_not_found(self, store, customer_form):
        other = await store.create_form(FormCreate(title="Other", form_schema=_schema()))
        response = await store.create_response(other.id, {})

        with pytest.raises(NotFoundError):
            await ResponseSubmissionService(store).update(
                customer_form.id, response.id, {"name": "Alice"}
            )

    @pytest.mark.asyncio
    async def test_unknown_response(self, store, customer_form):
        with pytest.raises(NotFoundError):
            await ResponseSubmissionService(store).update(customer_form.id, "nope", {})


class TestDeleteResponse:
    """Tests for deleting a stored response."""

    @pytest.mark.asyncio
    async def test_delete_removes_task_links(self, store, customer_form):
        """Deleting a response drops it from the responses of its task."""
        service = ResponseSubmissionService(store)
        task = await store.create_task(TaskCreate(assigned_to="u2"))
        first = await service.submit(customer_form.id, {"name": "A"}, "u1", task.id)
        second = await service.submit(customer_form.id, {"name": "B"}, "u1", task.id)

        await service.delete(customer_form.id, first.id)

        linked = await store.get_responses_for_tasks([task.id])
        assert [r.id for r in linked[task.id]] == [second.id]
        assert await store.get_response(first.id) is None
        assert await store.get_task(task.id) is not None

    @pytest.mark.asyncio
    async def test_last_submission_removed_from_submitted_tasks(self, store, customer_form):
        service = ResponseSubmissionService(store)
        task = await store.create_task(TaskCreate(assigned_to="u2"))
        response = await service.submit(customer_form.id, {"name": "A"}, "u1", task.id)

        await service.delete(customer_form.id, response.id)

        assert await store.list_submitted_task_ids("u1") == []

    @pytest.mark.asyncio
    async def test_delete_unknown_response(self, store, customer_form):
        with pytest.raises(NotFoundError):
            await ResponseSubmissionService(store).delete(customer_form.id, "nope")


async def _people_form(store):
    return await store.create_form(
        FormCreate(
            title="People",
            form_schema=_schema(
                {"id": "name", "type": "text", "label": "Name"},
                {"id": "age", "type": "number", "label": "Age"},
                {"id": "member", "type": "checkbox", "label": "Member"},
            ),
        )
    )


def _filter(operator: str, value=None) -> ResponseFilter:
    return ResponseFilter(operator=operator, value=value)


def _search(**filters) -> ResponseSearch:
    return ResponseSearch(filters=filters, page_size=100)


class TestSearchResponses:
    """Tests for filtered, paginated response listings."""

    @pytest.mark.asyncio
    async def test_text_operators_ignore_case(self, store):
        form = await _people_form(store)
        for name in ("Alice Smith", "bob", "ALICIA", "Mallory"):
            await store.create_response(form.id, {"name": name})
        service = ResponseSubmissionService(store)

        contains = await service.search(form.id, _search(name=_filter("contains", "ali")))
        starts = await service.search(form.id, _search(name=_filter("startsWith", "AL")))
        ends = await service.search(form.id, _search(name=_filter("endsWith", "ORY")))

        assert [r.data["name"] for r in contains.data] == ["ALICIA", "Alice Smith"]
        assert {r.data["name"] for r in starts.data} == {"ALICIA", "Alice Smith"}
        assert [r.data["name"] for r in ends.data] == ["Mallory"]

    @pytest.mark.asyncio
    async def test_wildcards_match_literally(self, store):
        form = await _people_form(store)
        await store.create_response(form.id, {"name": "100% sure"})
        await store.create_response(form.id, {"name": "100 percent"})

        page = await ResponseSubmissionService(store).search(
            form.id, _search(name=_filter("contains", "0%"))
        )

        assert [r.data["name"] for r in page.data] == ["100% sure"]

    @pytest.mark.asyncio
    async def test_equals_is_exact(self, store):
        form = await _people_form(store)
        await store.create_response(form.id, {"name": "Alice", "age": 30})
        await store.create_response(form.id, {"name": "alice", "age": 31})
        service = ResponseSubmissionService(store)

        by_name = await service.search(form.id, _search(name=_filter("equals", "Alice")))
        by_age = await service.search(form.id, _search(age={"value": 31}))

        assert [r.data["age"] for r in by_name.data] == [30]
        assert [r.data["name"] for r in by_age.data] == ["alice"]

    @pytest.mark.asyncio
    async def test_flag_operators(self, store):
        """Flags match JSON booleans and their text form; other values match neither."""
        form = await _people_form(store)
        await store.create_response(form.id, {"name": "a", "member": True})
        await store.create_response(form.id, {"name": "b", "member": "true"})
        await store.create_response(form.id, {"name": "c", "member": False})
        await store.create_response(form.id, {"name": "d"})
        service = ResponseSubmissionService(store)

        members = await service.search(form.id, _search(member=_filter("isTrue")))
        others = await service.search(form.id, _search(member=_filter("isFalse")))

        assert {r.data["name"] for r in members.data} == {"a", "b"}
        assert [r.data["name"] for r in others.data] == ["c"]

    @pytest.mark.asyncio
    async def test_numeric_comparisons(self, store):
        form = await _people_form(store)
        await store.create_response(form.id, {"name": "young", "age": 17})
        await store.create_response(form.id, {"name": "adult", "age": 42})
        await store.create_response(form.id, {"name": "typed", "age": " 19.5 "})
        await store.create_response(form.id, {"name": "unknown", "age": "many"})
        service = ResponseSubmissionService(store)

        older = await service.search(form.id, _search(age=_filter("greaterThan", "18")))
        younger = await service.search(form.id, _search(age=_filter("lessThan", 20)))

        assert {r.data["name"] for r in older.data} == {"adult", "typed"}
        assert {r.data["name"] for r in younger.data} == {"young", "typed"}

    @pytest.mark.asyncio
    async def test_filters_combine_and_blank_values_are_skipped(self, store):
        form = await _people_form(store)
        await store.create_response(form.id, {"name": "Alice", "age": 30})
        await store.create_response(form.id, {"name": "Alice", "age": 12})
        await store.create_response(form.id, {"name": "Bob", "age": 40})
        service = ResponseSubmissionService(store)

        combined = await service.search(
            form.id,
            _search(
                name=_filter("equals", "Alice"),
                age=_filter("greaterThan", 18),
            ),
        )
        blank = await service.search(
            form.id,
            _search(
                name=_filter("contains", ""),
                age=_filter("equals", None),
                member=_filter("equals", False),
            ),
        )

        assert [r.data["age"] for r in combined.data] == [30]
        assert blank.total == 3

    @pytest.mark.asyncio
    async def test_pages_newest_first(self, store, customer_form):
        created = [
            await store.create_response(customer_form.id, {"name": f"n{i}"}) for i in range(5)
        ]
        other = await store.create_form(FormCreate(title="Other", form_schema=_schema()))
        await store.create_response(other.id, {"name": "elsewhere"})
        service = ResponseSubmissionService(store)

        first = await service.search(customer_form.id, ResponseSearch(page=1, page_size=2))
        last = await service.search(customer_form.id, ResponseSearch(page=3, page_size=2))

        assert [r.id for r in first.data] == [created[4].id, created[3].id]
        assert [r.id for r in last.data] == [created[0].id]
        assert last.total == 5
        assert last.total_pages == 3
        assert last.page_size == 2

    @pytest.mark.asyncio
    async def test_double_encoded_data_is_searched(self, store, customer_form):
        db = await get_db()
        await db.execute(
            """
            INSERT INTO responses (id, form_id, data_json, created_at, updated_at)
            VALUES ('legacy', ?, ?, '2024-01-01T00:00:00', '2024-01-01T00:00:00')
            """,
            (customer_form.id, json.dumps(json.dumps({"name": "Legacy Corp"}))),
        )
        await db.commit()

        page = await ResponseSubmissionService(store).search(
            customer_form.id, _search(name=_filter("contains", "corp"))
        )

        assert [r.id for r in page.data] == ["legacy"]
        assert page.data[0].data == {"name": "Legacy Corp"}

    @pytest.mark.asyncio
    async def test_unknown_form(self, store):
        with pytest.raises(NotFoundError):
            await ResponseSubmissionService(store).search("nope", ResponseSearch())

    def test_numeric_operator_needs_a_number(self):
        with pytest.raises(ValidationError):
            ResponseFilter(operator="greaterThan", value="abc")

    def test_field_ids_with_quotes_rejected(self):
        with pytest.raises(ValidationError):
            ResponseSearch(filters={'a"b': {"value": "x"}})
