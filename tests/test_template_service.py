import pytest

from classquiz.constants import collections
from classquiz.core.errors import QuizServiceError, RejectionKind
from classquiz.core.memory_store import InMemoryDocumentStore
from classquiz.core.services.template_service import TemplateService
from tests.factories import OTHER_TEACHER, TEACHER, mc_question, template_data


async def _kind_of(awaitable) -> RejectionKind:
    with pytest.raises(QuizServiceError) as excinfo:
        await awaitable
    return excinfo.value.kind


class _TemplateQueryFailsStore(InMemoryDocumentStore):
    async def query(self, collection, equals=None, ranges=()):
        if collection == collections.TEMPLATES:
            raise ConnectionError("quota count unavailable")
        return await super().query(collection, equals, ranges)


@pytest.fixture
def service(store, clock) -> TemplateService:
    return TemplateService(store, clock)


def _seed_owned(store, owner: str, count: int) -> None:
    for index in range(count):
        store.seed(collections.TEMPLATES, f"{owner}-t{index}", {"name": f"T{index}", "createdBy": owner})


class TestCreateTemplate:
    @pytest.mark.asyncio
    async def test_computes_counts_and_defaults(self, service, store, clock):
        template = await service.create_template(TEACHER, template_data(), caller_name="Ms. Rivera")
        assert template.id
        assert template.question_count == 3
        assert template.total_points == 6
        assert template.times_used == 0
        assert template.is_pre_made is False
        assert template.created_by == TEACHER
        assert template.created_by_name == "Ms. Rivera"
        assert template.created_at == clock.now

        stored = await store.get(collections.TEMPLATES, template.id)
        assert stored.data["questionCount"] == 3
        assert stored.data["totalPoints"] == 6
        assert stored.data["lastUsedAt"] is None
        assert stored.data["createdAt"] == clock.now

    @pytest.mark.asyncio
    async def test_free_text_is_sanitized(self, service):
        template = await service.create_template(
            TEACHER,
            template_data(name="  <b>Cells</b>  ", description="a & b", tags="  bio , <x> ,  "),
        )
        assert template.name == "&lt;b&gt;Cells&lt;/b&gt;"
        assert template.description == "a &amp; b"
        assert template.tags == ["bio", "&lt;x&gt;"]

    @pytest.mark.asyncio
    async def test_defaults_when_optional_fields_missing(self, service):
        data = template_data()
        for name in ("category", "gradingScale", "passingGrade", "tags", "description"):
            del data[name]
        template = await service.create_template(TEACHER, data)
        assert template.category == "Other"
        assert template.grading_scale == "traditional"
        assert template.passing_grade == 70
        assert template.tags == []
        assert template.created_by_name == "Teacher"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "   "},
            {"questions": []},
            {"questions": [mc_question(correct=7)]},
            {"category": "Astrology"},
            {"passingGrade": 101},
            {"passingGrade": "high"},
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_input(self, service, store, overrides):
        assert await _kind_of(service.create_template(TEACHER, template_data(**overrides))) is RejectionKind.INVALID_ARGUMENT
        assert store.count(collections.TEMPLATES) == 0

    @pytest.mark.asyncio
    async def test_oversized_template_rejected(self, service, store):
        huge = mc_question(options=["x" * 200] * 3000, correct=0)
        with pytest.raises(QuizServiceError) as excinfo:
            await service.create_template(TEACHER, template_data(questions=[huge]))
        assert excinfo.value.kind is RejectionKind.INVALID_ARGUMENT
        assert "Maximum size is 500KB" in excinfo.value.message
        assert store.count(collections.TEMPLATES) == 0


class TestTemplateQuota:
    @pytest.mark.asyncio
    async def test_forty_ninth_template_allowed(self, service, store):
        _seed_owned(store, TEACHER, 49)
        await service.create_template(TEACHER, template_data())
        assert store.count(collections.TEMPLATES) == 50

    @pytest.mark.asyncio
    async def test_fifty_first_template_rejected(self, service, store):
        _seed_owned(store, TEACHER, 50)
        assert await _kind_of(service.create_template(TEACHER, template_data())) is RejectionKind.RESOURCE_EXHAUSTED
        assert store.count(collections.TEMPLATES) == 50

    @pytest.mark.asyncio
    async def test_other_owners_do_not_count(self, service, store):
        _seed_owned(store, OTHER_TEACHER, 50)
        template = await service.create_template(TEACHER, template_data())
        assert template.created_by == TEACHER

    @pytest.mark.asyncio
    async def test_quota_lookup_failure_lets_creation_proceed(self, clock):
        store = _TemplateQueryFailsStore(clock)
        template = await TemplateService(store, clock).create_template(TEACHER, template_data())
        assert store.count(collections.TEMPLATES) == 1
        assert template.question_count == 3

    @pytest.mark.asyncio
    async def test_duplicate_counts_against_quota(self, service, store):
        original = await service.create_template(TEACHER, template_data())
        _seed_owned(store, TEACHER, 49)
        assert await _kind_of(service.duplicate_template(TEACHER, original.id)) is RejectionKind.RESOURCE_EXHAUSTED


class TestReadAccess:
    @pytest.mark.asyncio
    async def test_owner_reads_private_template(self, service):
        created = await service.create_template(TEACHER, template_data())
        assert (await service.get_template(TEACHER, created.id)).name == "Cell biology"

    @pytest.mark.asyncio
    async def test_other_teacher_cannot_read_private_template(self, service):
        created = await service.create_template(TEACHER, template_data())
        assert await _kind_of(service.get_template(OTHER_TEACHER, created.id)) is RejectionKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_anyone_reads_public_template(self, service):
        created = await service.create_template(TEACHER, template_data(isPublic=True))
        assert (await service.get_template(OTHER_TEACHER, created.id)).id == created.id

    @pytest.mark.asyncio
    async def test_missing_template(self, service):
        assert await _kind_of(service.get_template(TEACHER, "nope")) is RejectionKind.NOT_FOUND


class TestUpdateAndDelete:
    @pytest.mark.asyncio
    async def test_update_recomputes_counts(self, service, store, clock):
        created = await service.create_template(TEACHER, template_data())
        clock.advance(minutes=3)
        updated = await service.update_template(
            TEACHER, created.id, {"questions": [mc_question(points=4)], "name": "Renamed"}
        )
        assert (updated.question_count, updated.total_points) == (1, 4)
        assert updated.name == "Renamed"
        assert updated.updated_at == clock.now
        assert updated.created_at == created.created_at

        stored = await store.get(collections.TEMPLATES, created.id)
        assert stored.data["questionCount"] == 1
        assert stored.data["totalPoints"] == 4
        assert stored.data["updatedAt"] == clock.now

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, service):
        created = await service.create_template(TEACHER, template_data())
        updated = await service.update_template(TEACHER, created.id, {"isPublic": True})
        assert updated.is_public is True
        assert updated.question_count == 3
        assert updated.category == "Science"

    @pytest.mark.asyncio
    async def test_update_rejects_invalid_questions(self, service):
        created = await service.create_template(TEACHER, template_data())
        kind = await _kind_of(service.update_template(TEACHER, created.id, {"questions": []}))
        assert kind is RejectionKind.INVALID_ARGUMENT

    @pytest.mark.asyncio
    async def test_non_owner_cannot_update_public_template(self, service):
        created = await service.create_template(TEACHER, template_data(isPublic=True))
        kind = await _kind_of(service.update_template(OTHER_TEACHER, created.id, {"name": "Mine"}))
        assert kind is RejectionKind.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_owner_deletes(self, service, store):
        created = await service.create_template(TEACHER, template_data())
        await service.delete_template(TEACHER, created.id)
        assert await store.get(collections.TEMPLATES, created.id) is None

    @pytest.mark.asyncio
    async def test_non_owner_cannot_delete(self, service, store):
        created = await service.create_template(TEACHER, template_data(isPublic=True))
        assert await _kind_of(service.delete_template(OTHER_TEACHER, created.id)) is RejectionKind.PERMISSION_DENIED
        assert store.count(collections.TEMPLATES) == 1

    @pytest.mark.asyncio
    async def test_delete_missing(self, service):
        assert await _kind_of(service.delete_template(TEACHER, "nope")) is RejectionKind.NOT_FOUND


class TestDuplicateTemplate:
    @pytest.mark.asyncio
    async def test_copy_is_private_and_owned_by_caller(self, service):
        original = await service.create_template(TEACHER, template_data(isPublic=True))
        copy = await service.duplicate_template(OTHER_TEACHER, original.id, caller_name="Mr. Okafor")
        assert copy.id != original.id
        assert copy.name == "Cell biology (Copy)"
        assert copy.is_public is False
        assert copy.created_by == OTHER_TEACHER
        assert copy.created_by_name == "Mr. Okafor"
        assert copy.times_used == 0
        assert [q.to_document() for q in copy.questions] == [q.to_document() for q in original.questions]
        assert (copy.question_count, copy.total_points) == (3, 6)

    @pytest.mark.asyncio
    async def test_custom_name(self, service):
        original = await service.create_template(TEACHER, template_data())
        copy = await service.duplicate_template(TEACHER, original.id, new_name="  Unit 2 ")
        assert copy.name == "Unit 2"

    @pytest.mark.asyncio
    async def test_escaped_text_is_not_escaped_twice(self, service):
        original = await service.create_template(TEACHER, template_data(name="Cells & DNA"))
        copy = await service.duplicate_template(TEACHER, original.id)
        assert copy.name == "Cells &amp; DNA (Copy)"

    @pytest.mark.asyncio
    async def test_default_name_stays_within_limit(self, service):
        original = await service.create_template(TEACHER, template_data(name="a" * 200))
        copy = await service.duplicate_template(TEACHER, original.id)
        assert len(copy.name) == 200
        assert copy.name == "a" * 193 + " (Copy)"

    @pytest.mark.asyncio
    async def test_default_name_cap_keeps_entities_whole(self, service):
        original = await service.create_template(TEACHER, template_data(name="a" * 190 + "&&&"))
        assert original.name == "a" * 190 + "&amp;&amp;"
        copy = await service.duplicate_template(TEACHER, original.id)
        assert copy.name == "a" * 190 + " (Copy)"

    @pytest.mark.asyncio
    async def test_private_template_of_another_teacher(self, service):
        original = await service.create_template(TEACHER, template_data())
        kind = await _kind_of(service.duplicate_template(OTHER_TEACHER, original.id))
        assert kind is RejectionKind.PERMISSION_DENIED


class TestListing:
    @pytest.mark.asyncio
    async def test_lists_only_own_templates_newest_first(self, service, clock):
        first = await service.create_template(TEACHER, template_data(name="First"))
        clock.advance(minutes=1)
        second = await service.create_template(TEACHER, template_data(name="Second"))
        await service.create_template(OTHER_TEACHER, template_data(name="Theirs"))
        listed = await service.list_templates(TEACHER)
        assert [template.id for template in listed] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_category_filter_sort_and_limit(self, service):
        await service.create_template(TEACHER, template_data(name="Zoology"))
        await service.create_template(TEACHER, template_data(name="Algebra", category="Mathematics"))
        await service.create_template(TEACHER, template_data(name="Botany"))

        science = await service.list_templates(TEACHER, category="Science", sort_by="name", sort_direction="asc")
        assert [template.name for template in science] == ["Botany", "Zoology"]

        everything = await service.list_templates(TEACHER, category="All", sort_by="name", sort_direction="asc", limit=2)
        assert [template.name for template in everything] == ["Algebra", "Botany"]

    @pytest.mark.asyncio
    async def test_bad_sort_direction(self, service):
        assert await _kind_of(service.list_templates(TEACHER, sort_direction="sideways")) is RejectionKind.INVALID_ARGUMENT

    @pytest.mark.asyncio
    async def test_search_matches_name_description_and_tags(self, service):
        await service.create_template(TEACHER, template_data(name="Cells", tags=["biology"]))
        await service.create_template(TEACHER, template_data(name="Fractions", description="Halves and quarters", tags=[]))
        await service.create_template(TEACHER, template_data(name="Rivers", description="", tags=["geography"]))

        assert [t.name for t in await service.search_templates(TEACHER, "BIO")] == ["Cells"]
        assert [t.name for t in await service.search_templates(TEACHER, "quarters")] == ["Fractions"]
        assert len(await service.search_templates(TEACHER, "  ")) == 3

    @pytest.mark.asyncio
    async def test_public_templates_most_used_first(self, service, store):
        store.seed(collections.TEMPLATES, "p1", {"name": "Rare", "createdBy": OTHER_TEACHER, "isPublic": True, "timesUsed": 2, "category": "Science"})
        store.seed(collections.TEMPLATES, "p2", {"name": "Popular", "createdBy": OTHER_TEACHER, "isPublic": True, "timesUsed": 40, "category": "Science"})
        store.seed(collections.TEMPLATES, "p3", {"name": "Maths", "createdBy": TEACHER, "isPublic": True, "timesUsed": 9, "category": "Mathematics"})
        store.seed(collections.TEMPLATES, "x1", {"name": "Hidden", "createdBy": OTHER_TEACHER, "isPublic": False, "timesUsed": 99})

        assert [t.id for t in await service.get_public_templates()] == ["p2", "p3", "p1"]
        assert [t.id for t in await service.get_public_templates(category="Science")] == ["p2", "p1"]
        assert [t.id for t in await service.get_public_templates(limit=1)] == ["p2"]


class TestTemplateStats:
    @pytest.mark.asyncio
    async def test_recent_usage_is_newest_first_and_capped(self, service, store, clock):
        created = await service.create_template(TEACHER, template_data())
        for index in range(12):
            clock.advance(minutes=1)
            store.seed(
                collections.TEMPLATE_USAGE,
                f"u{index}",
                {"templateId": created.id, "usedBy": TEACHER, "quizId": f"q{index}", "classId": "c", "usedAt": clock.now},
            )
        store.seed(
            collections.TEMPLATE_USAGE,
            "foreign",
            {"templateId": created.id, "usedBy": OTHER_TEACHER, "quizId": "qx", "classId": "c", "usedAt": clock.now},
        )

        stats = await service.get_template_stats(TEACHER, created.id)
        assert (stats.question_count, stats.total_points) == (3, 6)
        assert len(stats.recent_usage) == 10
        assert stats.recent_usage[0].quiz_id == "q11"
        assert all(usage.used_by == TEACHER for usage in stats.recent_usage)

    @pytest.mark.asyncio
    async def test_stats_follow_read_rule(self, service):
        created = await service.create_template(TEACHER, template_data())
        assert await _kind_of(service.get_template_stats(OTHER_TEACHER, created.id)) is RejectionKind.PERMISSION_DENIED
