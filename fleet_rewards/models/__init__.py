"""Import every model so Base.metadata is complete for create_all / Alembic."""
from fleet_rewards.models.audit_log import AuditLog
from fleet_rewards.models.profile import Profile
from fleet_rewards.models.referral import Referral
from fleet_rewards.models.reward_account import RewardAccount
from fleet_rewards.models.reward_ledger_entry import RewardLedgerEntry
from fleet_rewards.models.withdrawal_request import WithdrawalRequest

__all__ = [
    "AuditLog",
    "Profile",
    "Referral",
    "RewardAccount",
    "RewardLedgerEntry",
    "WithdrawalRequest",
]
