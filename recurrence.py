import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import get_settings
from models import Income, RecurringIncome


logger = logging.getLogger(__name__)


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


@dataclass
class ReconcileResult:
    created: list[Income] = field(default_factory=list)
    skipped: int = 0

    @property
    def message(self) -> str:
        if not self.created:
            return "No recurring incomes due"
        return f"Created {len(self.created)} recurring incomes"


class RecurringIncomeEngine:
    """Materializes due recurring income templates into ledger incomes.

    A generated income is keyed by (template id, year, month); the key is
    backed by a unique constraint so a concurrent run cannot double-insert.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def due_templates(
        self, today: date, user_id: Optional[int] = None
    ) -> list[RecurringIncome]:
        stmt = select(RecurringIncome).where(
            RecurringIncome.is_active.is_(True),
            RecurringIncome.auto_create.is_(True),
            RecurringIncome.start_date <= today,
            or_(RecurringIncome.end_date.is_(None), RecurringIncome.end_date >= today),
        )
        if user_id is not None:
            stmt = stmt.where(RecurringIncome.user_id == user_id)
        stmt = stmt.order_by(RecurringIncome.recurring_day, RecurringIncome.id)
        templates = self.session.scalars(stmt).all()
        return [
            template
            for template in templates
            if template.occurrence_date(today.year, today.month) <= today
        ]

    def has_occurrence(self, template: RecurringIncome, year: int, month: int) -> bool:
        stmt = (
            select(Income.id)
            .where(
                Income.recurring_income_id == template.id,
                Income.occurrence_year == year,
                Income.occurrence_month == month,
            )
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None

    def reconcile_user(
        self, user_id: int, today: Optional[date] = None
    ) -> ReconcileResult:
        today = today or local_today()
        return self._reconcile(self.due_templates(today, user_id=user_id), today)

    def reconcile_all(self, today: Optional[date] = None) -> ReconcileResult:
        today = today or local_today()
        return self._reconcile(self.due_templates(today), today)

    def _reconcile(
        self, templates: list[RecurringIncome], today: date
    ) -> ReconcileResult:
        result = ReconcileResult()
        for template in templates:
            if template.amount_cents <= 0:
                logger.warning(
                    f"recurring_income_skipped: template_id={template.id} "
                    f"reason=non_positive_amount amount_cents={template.amount_cents}"
                )
                result.skipped += 1
                continue
            if self.has_occurrence(template, today.year, today.month):
                continue
            try:
                with self.session.begin_nested():
                    income = self._materialize(template, today.year, today.month)
            except IntegrityError:
                logger.info(
                    f"recurring_income_exists: template_id={template.id} "
                    f"year={today.year} month={today.month}"
                )
                continue
            except Exception:
                logger.exception(
                    f"recurring_income_failed: template_id={template.id} "
                    f"year={today.year} month={today.month}"
                )
                result.skipped += 1
                continue
            result.created.append(income)
            logger.info(
                f"recurring_income_created: template_id={template.id} "
                f"income_id={income.id} year={today.year} month={today.month}"
            )
        self.session.flush()
        return result

    def _materialize(self, template: RecurringIncome, year: int, month: int) -> Income:
        income = Income(
            user_id=template.user_id,
            source=template.source,
            amount_cents=template.amount_cents,
            category_id=template.category_id,
            description=template.description,
            date=template.occurrence_date(year, month),
            is_auto_created=True,
            recurring_income_id=template.id,
            occurrence_year=year,
            occurrence_month=month,
        )
        self.session.add(income)
        template.last_created_year = year
        template.last_created_month = month
        self.session.flush()
        return income
