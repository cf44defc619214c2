from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from avatar_welcome.db.models import Customer, utcnow


class CustomersRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, customer_id: str) -> Optional[Customer]:
        return self.session.get(Customer, customer_id)

    def get_for_creator(self, creator_id: str, customer_id: str) -> Optional[Customer]:
        stmt = select(Customer).where(Customer.creator_id == creator_id, Customer.id == customer_id)
        return self.session.scalars(stmt).first()

    def get_by_platform_user_id(self, creator_id: str, platform_user_id: str) -> Optional[Customer]:
        stmt = select(Customer).where(
            Customer.creator_id == creator_id,
            Customer.platform_user_id == platform_user_id,
        )
        return self.session.scalars(stmt).first()

    def list_by_creator(self, creator_id: str) -> List[Customer]:
        stmt = select(Customer).where(Customer.creator_id == creator_id).order_by(Customer.joined_at)
        return list(self.session.scalars(stmt).all())

    def count_by_creator(self, creator_id: str) -> int:
        stmt = select(func.count()).select_from(Customer).where(Customer.creator_id == creator_id)
        return int(self.session.scalar(stmt) or 0)

    def get_or_create(
        self,
        *,
        creator_id: str,
        platform_user_id: str,
        platform_member_id: str,
        name: str,
        platform_company_id: str | None = None,
        email: str | None = None,
        username: str | None = None,
        plan_name: str | None = None,
        joined_at: datetime | None = None,
    ) -> tuple[Customer, bool]:
        existing = self.get_by_platform_user_id(creator_id, platform_user_id)
        if existing:
            return existing, False

        customer = Customer(
            creator_id=creator_id,
            platform_user_id=platform_user_id,
            platform_member_id=platform_member_id,
            platform_company_id=platform_company_id,
            name=name,
            email=email,
            username=username,
            plan_name=plan_name,
            joined_at=joined_at or utcnow(),
            first_video_sent=False,
        )
        self.session.add(customer)
        try:
            self.session.commit()
        except IntegrityError:
            # A concurrent insert for the same (creator, platform user) won.
            self.session.rollback()
            existing = self.get_by_platform_user_id(creator_id, platform_user_id)
            if existing is None:
                raise
            return existing, False
        self.session.refresh(customer)
        return customer, True

    def backfill_company_id(self, customer: Customer, platform_company_id: str | None) -> Customer:
        if not platform_company_id or customer.platform_company_id:
            return customer
        customer.platform_company_id = platform_company_id
        self.session.add(customer)
        self.session.commit()
        self.session.refresh(customer)
        return customer

    def set_first_video_sent(self, customer_id: str, value: bool) -> None:
        self.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(first_video_sent=value)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()

    def claim_welcome(self, customer_id: str) -> bool:
        """Atomically mark the customer's automatic welcome as taken; False if already claimed."""
        result = self.session.execute(
            update(Customer)
            .where(Customer.id == customer_id, Customer.welcome_claimed_at.is_(None))
            .values(welcome_claimed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount == 1

    def release_welcome(self, customer_id: str) -> None:
        self.session.execute(
            update(Customer)
            .where(Customer.id == customer_id)
            .values(welcome_claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
