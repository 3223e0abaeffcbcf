"""Account registry: signup, provisioning, authentication and role lookups."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError

from models import ACCOUNT_ROLES, Account, epoch_ms
from utils.errors import NotFound, Unauthorized, ValidationError
from utils.performance import STARTING_REPUTATION
from utils.settings import EngineSettings

logger = logging.getLogger(__name__)

SELF_SIGNUP_ROLES = frozenset({"student", "vendor"})

# Provisioned accounts without an explicit password get these; users are told to change them.
DEFAULT_PROVISION_PASSWORDS = {
    "vendor": "vendor123",
    "counselor": "counselor123",
    "admin": "admin123",
}


class Directory:
    def __init__(self, session, settings: Optional[EngineSettings] = None, clock: Callable[[], int] = epoch_ms) -> None:
        self.session = session
        self.settings = settings or EngineSettings()
        self.clock = clock

    def _starting_balance(self, role: str) -> int:
        if role == "student":
            return self.settings.student_starting_balance
        if role == "vendor":
            return self.settings.vendor_starting_balance
        if role == "admin":
            return self.settings.default_admin_balance
        return 0

    def _create(self, email: str, password: str, full_name: str, role: str) -> Account:
        email = (email or "").strip().lower()
        full_name = (full_name or "").strip()
        if not email or not full_name:
            raise ValidationError("Email and name are required")
        if role not in ACCOUNT_ROLES:
            raise ValidationError("Unknown role", role=role)
        if not password:
            raise ValidationError("Password is required")
        if self.session.query(Account).filter_by(email=email).first():
            raise ValidationError("Email already registered", email=email)

        balance = self._starting_balance(role)
        account = Account(
            email=email,
            full_name=full_name,
            role=role,
            balance=balance,
            opening_balance=balance,
            reputation_score=STARTING_REPUTATION if role == "vendor" else None,
            reward_points=0,
            badges=[] if role == "vendor" else None,
            created_at=self.clock(),
        )
        account.set_password(password)
        self.session.add(account)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise ValidationError("Email already registered", email=email) from exc
        logger.info("Account created", extra={"account_id": account.id, "role": role})
        return account

    def signup(self, email: str, password: str, full_name: str, role: str = "student") -> Account:
        if role not in SELF_SIGNUP_ROLES:
            raise Unauthorized("Only students and vendors can self-register", role=role)
        return self._create(email, password, full_name, role)

    def provision(self, email: str, full_name: str, role: str, password: Optional[str] = None) -> Account:
        """Admin-side account creation for vendors, counselors and further admins."""
        if role == "student":
            raise ValidationError("Students register themselves")
        return self._create(email, password or DEFAULT_PROVISION_PASSWORDS.get(role, ""), full_name, role)

    def authenticate(self, email: str, password: str) -> Account:
        account = self.session.query(Account).filter_by(email=(email or "").strip().lower()).first()
        if account is None or not account.check_password(password or ""):
            raise Unauthorized("Invalid email or password")
        if not account.is_active:
            raise Unauthorized("Account disabled")
        account.last_login_at = self.clock()
        self.session.commit()
        return account

    def account_by_id(self, account_id: str) -> Optional[Account]:
        if not account_id:
            return None
        return self.session.get(Account, str(account_id))

    def require(self, account_id: str, role: Optional[str] = None) -> Account:
        """Resolve an active account, optionally of a given role, or raise ``NotFound``."""
        account = self.account_by_id(account_id)
        if account is None or not account.is_active:
            raise NotFound("Account not found", account_id=account_id)
        if role and account.role != role:
            raise NotFound(f"No {role} account with this id", account_id=account_id)
        return account

    def accounts_by_role(self, role: str, include_inactive: bool = False) -> List[Account]:
        if role not in ACCOUNT_ROLES:
            raise ValidationError("Unknown role", role=role)
        query = self.session.query(Account).filter(Account.role == role)
        if not include_inactive:
            query = query.filter(Account.is_active.is_(True))
        return query.order_by(Account.full_name).all()

    def deactivate(self, account_id: str) -> Account:
        account = self.account_by_id(account_id)
        if account is None:
            raise NotFound("Account not found", account_id=account_id)
        account.is_active = False
        self.session.commit()
        logger.info("Account deactivated", extra={"account_id": account.id})
        return account

    def ensure_default_admin(self, email: str, password: str) -> Optional[Account]:
        """Make sure a default admin can log in without registering."""
        email = (email or "").lower().strip()
        if not email or not password:
            return None
        admin = self.session.query(Account).filter_by(email=email).first()
        if admin:
            updates = False
            if admin.role != "admin":
                admin.role = "admin"
                updates = True
            if not admin.is_active:
                admin.is_active = True
                updates = True
            if updates:
                self.session.commit()
            return admin
        return self._create(email, password, "System Administrator", "admin")
