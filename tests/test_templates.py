# test_templates.py -- Template store lifecycle

from __future__ import annotations

from netflow_collector.models import FieldSpec
from netflow_collector.netflow.templates import TemplateStore


class TestTemplateStore:
    def test_lookup_unknown_returns_none(self):
        store = TemplateStore("p1")
        assert store.lookup(256) is None
        assert 256 not in store

    def test_upsert_preserves_order_and_count(self):
        store = TemplateStore("p1")
        fields = [FieldSpec(8, 4), FieldSpec(12, 4), FieldSpec(7, 2), FieldSpec(11, 2), FieldSpec(1, 4)]
        store.upsert(300, fields)
        layout = store.lookup(300)
        assert layout is not None
        assert list(layout) == fields
        assert len(layout) == 5

    def test_reannounce_replaces_layout(self):
        store = TemplateStore("p1")
        store.upsert(256, [FieldSpec(8, 4), FieldSpec(12, 4), FieldSpec(1, 4)])
        store.upsert(256, [FieldSpec(2, 4)])
        assert store.lookup(256) == (FieldSpec(2, 4),)
        assert len(store) == 1

    def test_stored_layout_is_a_copy(self):
        store = TemplateStore("p1")
        fields = [FieldSpec(8, 4)]
        store.upsert(256, fields)
        fields.append(FieldSpec(12, 4))
        assert store.lookup(256) == (FieldSpec(8, 4),)

    def test_ids_sorted(self):
        store = TemplateStore("p1")
        for tid in (400, 256, 300):
            store.upsert(tid, [FieldSpec(1, 4)])
        assert store.ids() == [256, 300, 400]

    def test_stores_are_independent(self):
        a = TemplateStore("a")
        b = TemplateStore("b")
        a.upsert(256, [FieldSpec(1, 4)])
        assert b.lookup(256) is None
