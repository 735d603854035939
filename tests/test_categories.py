import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Category, CategoryType
from schemas import CategoryIn
from services import CategoryAmbiguous, CategoryService


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_resolve_matches_existing_category_case_insensitive() -> None:
    with make_session() as session:
        groceries = Category(name="Groceries", type=CategoryType.expense)
        session.add(groceries)
        session.commit()

        resolved = CategoryService(session).resolve_expense_category("  groceries ")
        assert resolved.id == groceries.id


def test_resolve_fuzzy_matches_within_one_edit() -> None:
    with make_session() as session:
        coffee = Category(name="Coffee", type=CategoryType.expense)
        session.add(coffee)
        session.commit()

        resolved = CategoryService(session).resolve_expense_category("Cofee")
        assert resolved.id == coffee.id


def test_resolve_ignores_income_categories() -> None:
    with make_session() as session:
        session.add(Category(name="Salary", type=CategoryType.income))
        session.commit()

        resolved = CategoryService(session).resolve_expense_category("Salary")
        assert resolved.type == CategoryType.expense
        assert len(CategoryService(session).list_all()) == 2


def test_resolve_creates_category_when_nothing_is_close() -> None:
    with make_session() as session:
        session.add(Category(name="Rent", type=CategoryType.expense))
        session.commit()

        resolved = CategoryService(session).resolve_expense_category("Travel")
        assert resolved.name == "Travel"
        assert len(CategoryService(session).list_all(CategoryType.expense)) == 2


def test_resolve_raises_on_ambiguous_match() -> None:
    with make_session() as session:
        session.add_all(
            [
                Category(name="Food", type=CategoryType.expense),
                Category(name="Fool", type=CategoryType.expense),
            ]
        )
        session.commit()

        with pytest.raises(CategoryAmbiguous, match="Food, Fool"):
            CategoryService(session).resolve_expense_category("Foo")


def test_duplicate_name_is_rejected_per_type() -> None:
    with make_session() as session:
        service = CategoryService(session)
        service.create(CategoryIn(name="Bonus", type=CategoryType.income))
        service.create(CategoryIn(name="Bonus", type=CategoryType.expense))

        with pytest.raises(ValueError, match="already exists"):
            service.create(CategoryIn(name="bonus", type=CategoryType.income))


def test_archived_categories_are_hidden_until_restored() -> None:
    with make_session() as session:
        service = CategoryService(session)
        gifts = service.create(CategoryIn(name="Gifts", type=CategoryType.expense))

        service.archive(gifts.id)
        assert service.list_all() == []
        assert [c.id for c in service.list_all(include_archived=True)] == [gifts.id]

        resolved = service.resolve_expense_category("gifts")
        assert resolved.id == gifts.id
        assert resolved.archived_at is None
