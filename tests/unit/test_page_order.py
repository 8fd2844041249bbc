import random

import pytest

from page_composer.domain.errors import InvalidOrder, ValidationError
from page_composer.domain.models import PageDescriptor, page_id_for, parse_page_id
from page_composer.domain.page_order import PageOrderModel


def _pages(file_id: str, count: int, name: str = "doc.pdf") -> list[PageDescriptor]:
    return [
        PageDescriptor(
            id=page_id_for(file_id, index),
            source_file_id=file_id,
            page_index=index,
            original_name=name,
        )
        for index in range(count)
    ]


@pytest.mark.unit
def test_page_ids_are_derived_from_file_and_index() -> None:
    assert page_id_for("abc", 2) == "abc_page_2"
    assert parse_page_id("abc_page_2") == ("abc", 2)
    assert parse_page_id("my_page_file_page_10") == ("my_page_file", 10)
    with pytest.raises(ValueError):
        parse_page_id("not-a-page")


@pytest.mark.unit
def test_descriptor_display_label_uses_one_based_page() -> None:
    page = _pages("A", 2, name="report.pdf")[1]
    assert page.original_page == 2
    assert page.display_label == "report.pdf - Pg 2"


@pytest.mark.unit
def test_append_keeps_existing_order_and_extends_at_end() -> None:
    model = PageOrderModel(_pages("A", 2))
    model.append(_pages("B", 2))
    assert model.ids() == ["A_page_0", "A_page_1", "B_page_0", "B_page_1"]


@pytest.mark.unit
def test_append_rejects_duplicate_ids() -> None:
    model = PageOrderModel(_pages("A", 2))
    with pytest.raises(InvalidOrder):
        model.append(_pages("A", 1))
    with pytest.raises(InvalidOrder):
        model.append(_pages("B", 1) * 2)
    assert model.ids() == ["A_page_0", "A_page_1"]


@pytest.mark.unit
def test_append_rejects_ids_that_do_not_match_their_page() -> None:
    model = PageOrderModel(_pages("A", 1))
    wrong_index = PageDescriptor(
        id="B_page_3", source_file_id="B", page_index=0, original_name="b.pdf"
    )
    wrong_file = PageDescriptor(
        id="B_page_0", source_file_id="C", page_index=0, original_name="c.pdf"
    )
    malformed = PageDescriptor(
        id="loose-page", source_file_id="B", page_index=0, original_name="b.pdf"
    )

    for page in (wrong_index, wrong_file, malformed):
        with pytest.raises(InvalidOrder):
            model.append([page])
    assert model.ids() == ["A_page_0"]


@pytest.mark.unit
def test_remove_is_idempotent() -> None:
    model = PageOrderModel(_pages("A", 3))
    assert model.remove("A_page_1") is True
    assert model.remove("A_page_1") is False
    assert model.ids() == ["A_page_0", "A_page_2"]


@pytest.mark.unit
def test_remove_by_source_file_keeps_relative_order_of_others() -> None:
    model = PageOrderModel(_pages("A", 3) + _pages("B", 2))
    model.reorder(["B_page_1", "A_page_0", "B_page_0", "A_page_1", "A_page_2"])

    removed = model.remove_by_source_file("B")

    assert [page.id for page in removed] == ["B_page_1", "B_page_0"]
    assert model.ids() == ["A_page_0", "A_page_1", "A_page_2"]


@pytest.mark.unit
def test_remove_many_removes_only_selected() -> None:
    model = PageOrderModel(_pages("A", 4))
    removed = model.remove_many(["A_page_3", "A_page_0", "missing"])
    assert {page.id for page in removed} == {"A_page_0", "A_page_3"}
    assert model.ids() == ["A_page_1", "A_page_2"]


@pytest.mark.unit
@pytest.mark.parametrize(
    "bad_order",
    [
        ["A_page_0", "A_page_1"],
        ["A_page_0", "A_page_1", "A_page_1"],
        ["A_page_0", "A_page_1", "A_page_2", "A_page_2"],
        ["A_page_0", "A_page_1", "Z_page_0"],
        [],
    ],
)
def test_reorder_rejects_non_permutations_and_leaves_state(bad_order: list[str]) -> None:
    model = PageOrderModel(_pages("A", 3))
    model.rotate("A_page_1", 90)
    before = model.snapshot()

    with pytest.raises(InvalidOrder):
        model.reorder(bad_order)

    assert model.snapshot() == before


@pytest.mark.unit
def test_move_shifts_page_to_new_position() -> None:
    model = PageOrderModel(_pages("A", 4))
    model.move("A_page_3", 0)
    assert model.ids() == ["A_page_3", "A_page_0", "A_page_1", "A_page_2"]
    model.move("A_page_3", 99)
    assert model.ids() == ["A_page_0", "A_page_1", "A_page_2", "A_page_3"]
    with pytest.raises(InvalidOrder):
        model.move("missing", 0)


@pytest.mark.unit
def test_four_quarter_turns_restore_rotation() -> None:
    model = PageOrderModel(_pages("A", 1))
    for expected in (90, 180, 270, 0):
        model.rotate("A_page_0", 90)
        assert model.get("A_page_0").rotation == expected


@pytest.mark.unit
def test_rotate_handles_negative_delta_and_missing_id() -> None:
    model = PageOrderModel(_pages("A", 1))
    model.rotate("A_page_0", -90)
    assert model.get("A_page_0").rotation == 270
    model.rotate("missing", 90)
    assert len(model) == 1
    with pytest.raises(ValidationError):
        model.rotate("A_page_0", 45)


@pytest.mark.unit
def test_snapshot_is_independent_of_internal_state() -> None:
    model = PageOrderModel(_pages("A", 2))
    snapshot = model.snapshot()
    snapshot.reverse()
    snapshot.pop()
    assert model.ids() == ["A_page_0", "A_page_1"]


@pytest.mark.unit
def test_random_operations_conserve_id_set() -> None:
    rng = random.Random(1234)
    model = PageOrderModel()
    appended: set[str] = set()
    removed: set[str] = set()

    for step in range(200):
        action = rng.choice(["append", "remove", "reorder", "remove_file", "rotate"])
        if action == "append":
            pages = _pages(f"F{step}", rng.randint(1, 4))
            model.append(pages)
            appended.update(page.id for page in pages)
        elif action == "remove" and len(model):
            page_id = rng.choice(model.ids())
            model.remove(page_id)
            removed.add(page_id)
        elif action == "remove_file" and len(model):
            file_id = rng.choice(model.snapshot()).source_file_id
            removed.update(page.id for page in model.remove_by_source_file(file_id))
        elif action == "reorder":
            ids = model.ids()
            rng.shuffle(ids)
            model.reorder(ids)
        elif action == "rotate" and len(model):
            model.rotate(rng.choice(model.ids()), rng.choice([90, 180, 270]))

        ids = model.ids()
        assert len(ids) == len(set(ids))
        assert set(ids) == appended - removed
