"""Tests for customer segmentation, duplicate detection, merge and import"""

from datetime import date, datetime, timedelta

import pytest
from fastapi import HTTPException

from app.domain.customers.analytics import spending_trend, visit_frequency
from app.domain.customers.importer import import_customers, read_rows, validate_import
from app.domain.customers.merge import find_duplicates, levenshtein, merge_customers, name_similarity
from app.domain.customers.segmentation import (
    SegmentService,
    evaluate_rule,
    evaluate_rules,
    validate_rules,
)
from app.models_customer import Customer, CustomerMergeLog

NOW = datetime(2026, 10, 18, 12, 0)


def _view(**overrides) -> dict:
    view = {
        "name": "Maria Silva",
        "tags": ["vip", "coloracao"],
        "birthDate": date(1990, 10, 2),
        "createdAt": NOW - timedelta(days=10),
        "lastVisitAt": NOW - timedelta(days=70),
        "metrics": {"totalSpent": 6200.0, "totalAppointments": 24, "visitFrequency": 14},
    }
    view.update(overrides)
    return view


@pytest.mark.unit
class TestSegmentRules:
    @pytest.mark.parametrize(
        "rule,expected",
        [
            ({"field": "metrics.totalSpent", "operator": "gte", "value": 5000}, True),
            ({"field": "metrics.totalSpent", "operator": "lt", "value": 5000}, False),
            ({"field": "name", "operator": "contains", "value": "silva"}, True),
            ({"field": "name", "operator": "startsWith", "value": "Maria"}, True),
            ({"field": "tags", "operator": "contains", "value": "vip"}, True),
            ({"field": "metrics.totalAppointments", "operator": "between", "value": [20, 30]}, True),
            ({"field": "metrics.lastVisitDaysAgo", "operator": "gte", "value": 60}, True),
            ({"field": "createdAt", "operator": "gte", "value": "last30days"}, True),
            ({"field": "birthMonth", "operator": "eq", "value": "currentMonth"}, True),
            ({"field": "email", "operator": "isNull"}, True),
            ({"field": "metrics.totalSpent", "operator": "gte", "value": "lots"}, False),
        ],
    )
    def test_operators(self, rule, expected):
        assert evaluate_rule(_view(), rule, NOW) is expected

    def test_never_visited_counts_as_long_ago(self):
        rule = {"field": "metrics.lastVisitDaysAgo", "operator": "gte", "value": 120}
        assert evaluate_rule(_view(lastVisitAt=None), rule, NOW)

    def test_nested_groups(self):
        group = {
            "operator": "AND",
            "rules": [
                {"field": "metrics.totalSpent", "operator": "gte", "value": 5000},
                {
                    "operator": "OR",
                    "rules": [
                        {"field": "tags", "operator": "contains", "value": "noivas"},
                        {"field": "metrics.visitFrequency", "operator": "lte", "value": 21},
                    ],
                },
            ],
        }
        assert evaluate_rules(_view(), group, NOW)
        assert not evaluate_rules(_view(metrics={"totalSpent": 100}), group, NOW)

    @pytest.mark.parametrize(
        "group,message",
        [
            ({"operator": "AND"}, "'rules' list"),
            ({"operator": "XOR", "rules": []}, "AND or OR"),
            ({"rules": [{"operator": "eq", "value": 1}]}, "needs a field"),
            ({"rules": [{"field": "name", "operator": "like"}]}, "Unknown rule operator"),
        ],
    )
    def test_validate_rules(self, group, message):
        with pytest.raises(ValueError, match=message):
            validate_rules(group)

    def test_system_segments_follow_customer_metrics(self, db, tenant, make_customer):
        customer = make_customer(
            total_spent=6000,
            total_appointments=25,
            visit_frequency=10,
            last_visit_at=datetime.utcnow() - timedelta(days=5),
        )
        matched = SegmentService(db).evaluate_customer_segments(customer)
        assert set(matched) == {"vip", "frequent"}

        customer.last_visit_at = datetime.utcnow() - timedelta(days=130)
        db.commit()
        matched = SegmentService(db).evaluate_customer_segments(customer)
        assert set(matched) == {"vip", "at-risk", "churned", "frequent"}


@pytest.mark.unit
class TestAnalytics:
    def test_visit_frequency(self):
        visits = [NOW - timedelta(days=d) for d in (0, 10, 30)]
        assert visit_frequency(visits) == 15
        assert visit_frequency(visits[:1]) == 0

    @pytest.mark.parametrize(
        "amounts,trend",
        [
            ([100, 100, 100, 150, 150, 150], "UP"),
            ([150, 150, 150, 100, 100, 100], "DOWN"),
            ([100, 100, 100, 105, 95, 100], "STABLE"),
            ([0, 0, 0, 50, 0, 0], "UP"),
        ],
    )
    def test_spending_trend(self, amounts, trend):
        assert spending_trend([{"amount": a} for a in amounts]) == trend


@pytest.mark.unit
class TestDuplicatesAndMerge:
    def test_levenshtein(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3

    def test_name_similarity(self):
        assert name_similarity("Maria Silva", " maria silva ") == 1.0
        assert name_similarity("Maria Silva", "Maria Silvia") == pytest.approx(11 / 12)
        assert name_similarity("Maria", "Joana") < 0.8

    def test_find_by_phone_and_similar_name(self, db, tenant, make_customer):
        first = make_customer(total_appointments=5)
        second = make_customer(name="Maria S.", email="maria@gmail.com")
        make_customer(name="Maria Silvia", phone="+5511900001111")
        make_customer(name="Joana Prado", phone="+5511900002222")

        result = find_duplicates(db, tenant.id, fields=["phone"], include_name_similarity=True)

        by_field = {g["match_field"]: g for g in result["groups"]}
        assert by_field["phone"]["customer_ids"] == [first.id, second.id]
        assert by_field["phone"]["suggested_primary_id"] == first.id
        assert len(by_field["name"]["customer_ids"]) == 2

    def test_unknown_match_field(self, db, tenant):
        with pytest.raises(HTTPException) as exc:
            find_duplicates(db, tenant.id, fields=["address"])
        assert exc.value.status_code == 400

    def test_merge(self, db, tenant, owner, make_customer):
        primary = make_customer(tags=["vip"], loyalty_points=100)
        duplicate = make_customer(
            name="Maria S.", phone="+5511922223333", email="maria@gmail.com", tags=["cor"], loyalty_points=50
        )
        result = merge_customers(db, tenant.id, primary.id, [duplicate.id], user_id=owner.id)

        assert result["merged_count"] == 1
        db.refresh(primary)
        db.refresh(duplicate)
        assert primary.email == "maria@gmail.com"
        assert primary.tags == ["vip", "cor"]
        assert primary.loyalty_points == 150
        assert duplicate.deleted_at is not None
        assert duplicate.merged_into_id == primary.id
        assert db.query(CustomerMergeLog).count() == 1

    def test_merge_rejects_primary_in_list(self, db, tenant, make_customer):
        customer = make_customer()
        with pytest.raises(HTTPException) as exc:
            merge_customers(db, tenant.id, customer.id, [customer.id])
        assert exc.value.status_code == 400

    def test_merge_missing_customer(self, db, tenant, make_customer):
        customer = make_customer()
        with pytest.raises(HTTPException) as exc:
            merge_customers(db, tenant.id, customer.id, ["missing"])
        assert exc.value.status_code == 404


CSV = (
    "Nome;Telefone;E-mail;Nascimento;Etiquetas\n"
    "Ana Souza;(11) 98888-1111;ANA@mail.com;02/05/1992;vip, noivas\n"
    "Sem Contato;;;;\n"
    ";11977776666;;;\n"
    "Maria Silva;+5511912345678;;;\n"
).encode("utf-8")


@pytest.mark.unit
class TestImport:
    def test_read_rows_maps_portuguese_headers(self):
        rows = read_rows("clientes.csv", CSV)
        assert rows[0]["name"] == "Ana Souza"
        assert rows[0]["phone"] == "(11) 98888-1111"
        assert len(rows) == 4

    def test_unsupported_file(self):
        with pytest.raises(HTTPException) as exc:
            read_rows("clientes.pdf", b"")
        assert exc.value.status_code == 400

    def test_validate(self):
        report = validate_import(read_rows("clientes.csv", CSV))
        assert report["valid_rows"] == 2
        assert report["errors"] == [
            {"row": 3, "error": "Phone or email is required"},
            {"row": 4, "error": "Name is required"},
        ]
        first = report["preview"][0]
        assert first["phone"] == "+5511988881111"
        assert first["email"] == "ana@mail.com"
        assert first["birth_date"] == date(1992, 5, 2)
        assert first["tags"] == ["vip", "noivas"]

    def test_import_skips_existing(self, db, tenant, make_customer):
        make_customer()
        result = import_customers(db, tenant, read_rows("clientes.csv", CSV))

        assert result["created"] == 1
        assert result["skipped"] == 1
        assert result["failed"] == 2
        imported = db.query(Customer).filter(Customer.source == "IMPORT").one()
        assert imported.name == "Ana Souza"

    def test_dry_run_writes_nothing(self, db, tenant):
        result = import_customers(db, tenant, read_rows("clientes.csv", CSV), dry_run=True)
        assert result["created"] == 2
        assert db.query(Customer).count() == 0

    def test_update_existing(self, db, tenant, make_customer):
        existing = make_customer(tags=["antiga"])
        result = import_customers(db, tenant, read_rows("clientes.csv", CSV), duplicate_action="update")
        assert result["updated"] == 1
        db.refresh(existing)
        assert existing.tags == ["antiga"]
