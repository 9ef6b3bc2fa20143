"""
Test suite for loan operations

Tests collateral checks, global loan ids, repayment with interest, collateral
release, and the outstanding-principal invariant.
"""

import pytest

from custody_ledger.audit import AuditEventType
from custody_ledger.config import LedgerConfig, SECONDS_PER_YEAR
from custody_ledger.custody import CustodyError, InMemoryCustody, ManualClock
from custody_ledger.errors import ErrorKind
from custody_ledger.ledger import BankingLedger
from custody_ledger.loans import Loan, loan_key
from custody_ledger.storage import InMemoryStorage


USER1 = "SP1ABCDEFGH123456789"
USER2 = "SP2IJKLMNOP987654321"
POOL = "custody-pool"


class FlakyCustody(InMemoryCustody):
    """Custody that rejects the next N payouts out of the pool"""

    def __init__(self, balances=None):
        super().__init__(balances)
        self.failing_payouts = 0

    def transfer(self, amount, sender, recipient):
        if self.failing_payouts and sender == POOL:
            self.failing_payouts -= 1
            raise CustodyError("Pool payouts suspended")
        super().transfer(amount, sender, recipient)


@pytest.fixture
def clock():
    return ManualClock(start=1000)


@pytest.fixture
def custody():
    return FlakyCustody({USER1: 50_000_000, USER2: 50_000_000, POOL: 100_000_000})


@pytest.fixture
def ledger(custody, clock):
    ledger = BankingLedger(InMemoryStorage(), custody, clock, config=LedgerConfig())
    ledger.create_account(USER1, 5_000_000)
    return ledger


def assert_loan_invariant(ledger):
    check = ledger.verify_invariants()
    assert check["valid"], check


class TestLoan:
    """Test Loan record behaviour"""

    def test_key_and_round_trip(self):
        """Test Loan key and to/from dict conversion"""
        loan = Loan(owner=USER1, loan_id=7, amount=1, collateral=2, timestamp=3, interest_rate=5)
        assert loan.key == loan_key(USER1, 7) == f"{USER1}:7"
        assert Loan.from_dict(loan.to_dict()) == loan

    def test_accrued_interest(self):
        """Test loan interest accrual"""
        loan = Loan(owner=USER1, loan_id=1, amount=1_000_000, collateral=2_000_000,
                    timestamp=1000, interest_rate=5)
        assert loan.accrued_interest(1000 + SECONDS_PER_YEAR - 1, SECONDS_PER_YEAR) == 0
        assert loan.accrued_interest(1000 + 2 * SECONDS_PER_YEAR, SECONDS_PER_YEAR) == 100_000


class TestRequestLoan:
    """Test loan issuance"""

    def test_request_loan(self, ledger, custody):
        """Test basic loan issuance"""
        result = ledger.request_loan(USER1, 1_000_000, 2_000_000)

        assert result.ok
        assert result.value == 1
        assert ledger.platform_stats().total_loans == 1_000_000
        # Collateral in, principal out
        assert custody.balance_of(USER1) == 50_000_000 - 5_000_000 - 2_000_000 + 1_000_000
        assert_loan_invariant(ledger)

    def test_loan_details(self, ledger, clock):
        """Test stored loan fields"""
        loan_id = ledger.request_loan(USER1, 1_000_000, 2_000_000).value
        loan = ledger.loan_details(USER1, loan_id).value

        assert loan.amount == 1_000_000
        assert loan.collateral == 2_000_000
        assert loan.timestamp == clock.now()
        assert loan.interest_rate == 5
        assert loan.is_active

    def test_collateral_boundary(self, ledger):
        """Test the collateral ratio boundary"""
        assert ledger.request_loan(USER1, 1_000_000, 1_500_000).ok

        result = ledger.request_loan(USER1, 1_000_000, 1_499_999)
        assert result.error == ErrorKind.INSUFFICIENT_COLLATERAL
        assert result.code == 406

    def test_insufficient_collateral(self, ledger):
        """Test loan with too little collateral"""
        result = ledger.request_loan(USER1, 1_000_000, 1_000_000)
        assert result.error == ErrorKind.INSUFFICIENT_COLLATERAL
        assert ledger.platform_stats().total_loans == 0

    def test_zero_loan_amount(self, ledger):
        """Test zero loan amount"""
        result = ledger.request_loan(USER1, 0, 2_000_000)
        assert result.error == ErrorKind.INVALID_AMOUNT
        assert result.code == 403

    def test_negative_amount_and_low_collateral(self, ledger):
        """Test validation order for loan requests"""
        # Negative amounts are rejected before the collateral check
        assert ledger.request_loan(USER1, -5, 0).error == ErrorKind.INVALID_AMOUNT
        assert ledger.request_loan(USER1, 10, 1).error == ErrorKind.INSUFFICIENT_COLLATERAL

    def test_no_account_required(self, ledger):
        """Test borrowing without a deposit account"""
        assert not ledger.account_exists(USER2)
        assert ledger.request_loan(USER2, 1_000_000, 1_500_000).ok

    def test_loan_ids_are_global(self, ledger):
        """Test loan ids shared across owners"""
        ledger.create_account(USER2, 2_000_000)

        assert ledger.request_loan(USER1, 1_000_000, 2_000_000).value == 1
        assert ledger.request_loan(USER2, 500_000, 1_000_000).value == 2
        assert ledger.request_loan(USER1, 1_500_000, 3_000_000).value == 3

        assert ledger.owner_loan_count(USER1) == 2
        assert ledger.owner_loan_count(USER2) == 1
        assert ledger.platform_stats().total_loan_count == 3

    def test_loans_addressed_by_owner_and_id(self, ledger):
        """Test loan lookup by owner and id"""
        loan_id = ledger.request_loan(USER1, 1_000_000, 2_000_000).value

        assert ledger.loan_details(USER2, loan_id).error == ErrorKind.LOAN_NOT_FOUND
        assert ledger.repay_loan(USER2, loan_id).error == ErrorKind.LOAN_NOT_FOUND

    def test_collateral_shortfall_in_custody(self, ledger):
        """Test borrower without external funds"""
        poor = "SP3POOR"
        result = ledger.request_loan(poor, 1_000_000, 1_500_000)

        assert result.error == ErrorKind.CUSTODY_TRANSFER_FAILED
        assert ledger.platform_stats().total_loan_count == 0

    def test_disbursement_failure_returns_collateral(self, ledger, custody):
        """Test failed disbursement unwinds the collateral"""
        custody.failing_payouts = 1
        user_before = custody.balance_of(USER1)
        pool_before = custody.balance_of(POOL)
        events_before = ledger.audit_trail.count_events()

        result = ledger.request_loan(USER1, 1_000_000, 2_000_000)

        assert result.error == ErrorKind.CUSTODY_TRANSFER_FAILED
        assert custody.balance_of(USER1) == user_before
        assert custody.balance_of(POOL) == pool_before
        stats = ledger.platform_stats()
        assert stats.total_loans == 0
        assert stats.total_loan_count == 0
        assert ledger.owner_loan_count(USER1) == 0
        assert ledger.audit_trail.count_events() == events_before

    def test_failed_collateral_return_is_reported(self, ledger, custody):
        """Test a disbursement failure whose collateral reversal is also rejected"""
        custody.failing_payouts = 2
        user_before = custody.balance_of(USER1)

        result = ledger.request_loan(USER1, 1_000_000, 2_000_000)

        assert result.error == ErrorKind.CUSTODY_TRANSFER_FAILED
        assert "could not be reversed" in result.message
        # Collateral stays in the pool; ledger state is rolled back
        assert custody.balance_of(USER1) == user_before - 2_000_000
        stats = ledger.platform_stats()
        assert stats.total_loans == 0
        assert stats.total_loan_count == 0
        assert_loan_invariant(ledger)

    def test_issuance_is_audited(self, ledger):
        """Test loan issuance audit event"""
        loan_id = ledger.request_loan(USER1, 1_000_000, 2_000_000).value
        events = ledger.audit_trail.get_events_for_entity("loan", loan_key(USER1, loan_id))

        assert [e.event_type for e in events] == [AuditEventType.LOAN_ISSUED]
        assert events[0].metadata["collateral"] == 2_000_000


class TestRepayLoan:
    """Test loan repayment"""

    def test_immediate_repayment_has_no_interest(self, ledger, custody, clock):
        """Test repayment within the first year"""
        loan_id = ledger.request_loan(USER1, 1_000_000, 2_000_000).value
        after_issue = custody.balance_of(USER1)
        clock.advance(50)

        result = ledger.repay_loan(USER1, loan_id)

        assert result.ok
        assert result.value == 1_000_000
        # Repaid principal out, collateral back
        assert custody.balance_of(USER1) == after_issue - 1_000_000 + 2_000_000
        assert not ledger.loan_details(USER1, loan_id).value.is_active
        assert ledger.platform_stats().total_loans == 0
        assert_loan_invariant(ledger)

    def test_repayment_after_one_year(self, ledger, clock):
        """Test repayment after one year"""
        loan_id = ledger.request_loan(USER1, 1_000_000, 2_000_000).value
        clock.advance(SECONDS_PER_YEAR)

        assert ledger.repay_loan(USER1, loan_id).value == 1_050_000
        # Interest paid is not reflected in total_loans
        assert ledger.platform_stats().total_loans == 0

    def test_repay_twice(self, ledger):
        """Test repaying the same loan twice"""
        loan_id = ledger.request_loan(USER1, 1_000_000, 2_000_000).value
        assert ledger.repay_loan(USER1, loan_id).ok

        result = ledger.repay_loan(USER1, loan_id)
        assert result.error == ErrorKind.LOAN_NOT_FOUND
        assert result.code == 405

    def test_repay_missing_loan(self, ledger):
        """Test repaying an unknown loan"""
        assert ledger.repay_loan(USER1, 999).error == ErrorKind.LOAN_NOT_FOUND

    def test_repaid_record_is_retained(self, ledger, clock):
        """Test repaid loan record"""
        loan_id = ledger.request_loan(USER1, 1_000_000, 2_000_000).value
        issued = ledger.loan_details(USER1, loan_id).value
        clock.advance(SECONDS_PER_YEAR)
        ledger.repay_loan(USER1, loan_id)

        repaid = ledger.loan_details(USER1, loan_id).value
        assert repaid.amount == issued.amount
        assert repaid.collateral == issued.collateral
        assert repaid.timestamp == issued.timestamp
        assert repaid.interest_rate == issued.interest_rate

    def test_repayment_shortfall_fails_atomically(self, ledger, custody, clock):
        """Test repayment the borrower cannot cover"""
        borrower = "SP4BORROWER"
        custody.fund(borrower, 1_500_000)
        loan_id = ledger.request_loan(borrower, 1_000_000, 1_500_000).value
        # Borrower now holds exactly the principal; interest cannot be covered
        clock.advance(SECONDS_PER_YEAR)

        result = ledger.repay_loan(borrower, loan_id)

        assert result.error == ErrorKind.CUSTODY_TRANSFER_FAILED
        assert custody.balance_of(borrower) == 1_000_000
        assert ledger.loan_details(borrower, loan_id).value.is_active
        assert ledger.platform_stats().total_loans == 1_000_000
        assert_loan_invariant(ledger)

    def test_collateral_release_failure_refunds_repayment(self, ledger, custody):
        """Test failed collateral release unwinds the repayment"""
        loan_id = ledger.request_loan(USER1, 1_000_000, 2_000_000).value
        before = custody.balance_of(USER1)
        custody.failing_payouts = 1

        result = ledger.repay_loan(USER1, loan_id)

        assert result.error == ErrorKind.CUSTODY_TRANSFER_FAILED
        assert custody.balance_of(USER1) == before
        assert ledger.loan_details(USER1, loan_id).value.is_active

    def test_invariant_over_mixed_sequence(self, ledger, clock):
        """Test loan invariant across issues and repayments"""
        ledger.create_account(USER2, 3_000_000)
        first = ledger.request_loan(USER1, 1_000_000, 2_000_000).value
        assert_loan_invariant(ledger)
        second = ledger.request_loan(USER2, 800_000, 1_500_000).value
        assert_loan_invariant(ledger)
        clock.advance(SECONDS_PER_YEAR)
        ledger.repay_loan(USER1, first)
        assert_loan_invariant(ledger)
        ledger.request_loan(USER1, 2_000_000, 3_000_000)
        assert_loan_invariant(ledger)
        ledger.repay_loan(USER2, second)
        assert_loan_invariant(ledger)

        assert ledger.platform_stats().total_loans == 2_000_000
