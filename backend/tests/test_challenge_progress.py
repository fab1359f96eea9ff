import unittest
from datetime import date
from decimal import Decimal

from backend.challenge_progress import (
    SavingsChallenge,
    Transaction,
    evaluate_challenge,
    evaluate_challenges,
)


def make_challenge(challenge_type: str, **overrides) -> SavingsChallenge:
    values = {
        "id": f"{challenge_type}_1",
        "type": challenge_type,
        "title": "Challenge",
        "start_date": date(2024, 3, 1),
        "end_date": date(2024, 3, 31),
        "duration": 30,
        "target_progress": Decimal("100"),
        "current_progress": Decimal("0"),
        "status": "active",
    }
    values.update(overrides)
    return SavingsChallenge(**values)


def expense(day: date, amount: str, category: str = "Groceries") -> Transaction:
    return Transaction(amount=Decimal(amount), type="expense", date=day, category=category)


def income(day: date, amount: str) -> Transaction:
    return Transaction(amount=Decimal(amount), type="income", date=day, category="Salary")


class NoSpendTests(unittest.TestCase):
    def test_counts_elapsed_days_without_expenses(self) -> None:
        challenge = make_challenge("no_spend")
        transactions = [
            income(date(2024, 3, 2), "500"),
            expense(date(2024, 2, 28), "40"),
        ]

        result = evaluate_challenge(challenge, transactions, date(2024, 3, 11))

        self.assertEqual(result.current_progress, Decimal("10"))
        self.assertEqual(result.status, "active")

    def test_any_expense_in_window_resets_to_zero(self) -> None:
        challenge = make_challenge("no_spend", current_progress=Decimal("5"))
        transactions = [expense(date(2024, 3, 2), "1")]

        result = evaluate_challenge(challenge, transactions, date(2024, 3, 25))

        self.assertEqual(result.current_progress, Decimal("0"))

    def test_expense_after_now_is_ignored(self) -> None:
        challenge = make_challenge("no_spend")
        transactions = [expense(date(2024, 3, 20), "15")]

        result = evaluate_challenge(challenge, transactions, date(2024, 3, 4))

        self.assertEqual(result.current_progress, Decimal("3"))

    def test_unparsable_transaction_date_is_treated_as_today(self) -> None:
        challenge = make_challenge("no_spend")
        transactions = [
            Transaction(amount=Decimal("9"), type="expense", date="yesterday-ish")
        ]

        with self.assertLogs("backend.recurrence_calendar", level="WARNING"):
            result = evaluate_challenge(challenge, transactions, date(2024, 3, 4))

        self.assertEqual(result.current_progress, Decimal("0"))


class ReduceCategoryTests(unittest.TestCase):
    def test_over_budget_spend_floors_at_zero(self) -> None:
        challenge = make_challenge(
            "reduce_category", target_progress=Decimal("150"), target_category="Dining"
        )
        transactions = [
            expense(date(2024, 3, 3), "100", "Dining"),
            expense(date(2024, 3, 8), "70", "Dining"),
        ]

        result = evaluate_challenge(challenge, transactions, date(2024, 3, 10))

        self.assertEqual(result.current_progress, Decimal("0"))

    def test_progress_shrinks_with_category_spend(self) -> None:
        challenge = make_challenge(
            "reduce_category", target_progress=Decimal("150"), target_category="Dining"
        )
        transactions = [
            expense(date(2024, 3, 3), "100", "Dining"),
            expense(date(2024, 3, 4), "500", "Rent"),
            income(date(2024, 3, 5), "80"),
        ]

        result = evaluate_challenge(challenge, transactions, date(2024, 3, 10))

        self.assertEqual(result.current_progress, Decimal("50"))

    def test_missing_category_has_no_progress(self) -> None:
        challenge = make_challenge("reduce_category", target_progress=Decimal("150"))

        result = evaluate_challenge(challenge, [], date(2024, 3, 10))

        self.assertEqual(result.current_progress, Decimal("0"))


class SaveAmountTests(unittest.TestCase):
    def test_progress_is_net_cash_flow_in_window(self) -> None:
        challenge = make_challenge("save_amount")
        transactions = [
            income(date(2024, 3, 2), "500"),
            expense(date(2024, 3, 5), "300", "Rent"),
            income(date(2024, 2, 25), "1000"),
        ]

        result = evaluate_challenge(challenge, transactions, date(2024, 3, 10))

        self.assertEqual(result.current_progress, Decimal("200"))

    def test_negative_cash_flow_floors_at_zero(self) -> None:
        challenge = make_challenge("save_amount")
        transactions = [
            income(date(2024, 3, 2), "100"),
            expense(date(2024, 3, 5), "300"),
        ]

        result = evaluate_challenge(challenge, transactions, date(2024, 3, 10))

        self.assertEqual(result.current_progress, Decimal("0"))


class StreakTests(unittest.TestCase):
    def test_missed_day_restarts_streak(self) -> None:
        challenge = make_challenge("streak", target_progress=Decimal("7"))
        transactions = [
            expense(date(2024, 3, 1), "5"),
            income(date(2024, 3, 2), "50"),
            expense(date(2024, 3, 4), "5"),
        ]

        result = evaluate_challenge(challenge, transactions, date(2024, 3, 5))

        self.assertEqual(result.current_progress, Decimal("1"))
        self.assertEqual(result.streak_days, 1)

    def test_unbroken_streak_counts_every_day(self) -> None:
        challenge = make_challenge("streak", target_progress=Decimal("7"))
        transactions = [expense(date(2024, 3, day), "5") for day in range(1, 6)]

        result = evaluate_challenge(challenge, transactions, date(2024, 3, 5))

        self.assertEqual(result.current_progress, Decimal("5"))

    def test_today_without_entries_does_not_reset(self) -> None:
        challenge = make_challenge("streak", target_progress=Decimal("7"))
        transactions = [expense(date(2024, 3, day), "5") for day in range(1, 5)]

        result = evaluate_challenge(challenge, transactions, date(2024, 3, 5))

        self.assertEqual(result.current_progress, Decimal("4"))


class StatusTests(unittest.TestCase):
    def test_completed_after_end_when_target_met(self) -> None:
        challenge = make_challenge("save_amount", current_progress=Decimal("150"))

        result = evaluate_challenge(challenge, [], date(2024, 4, 1))

        self.assertEqual(result.status, "completed")
        self.assertEqual(result.current_progress, Decimal("150"))

    def test_failed_after_end_keeps_last_progress(self) -> None:
        challenge = make_challenge("save_amount", current_progress=Decimal("50"))
        transactions = [income(date(2024, 3, 10), "900")]

        result = evaluate_challenge(challenge, transactions, date(2024, 4, 1))

        self.assertEqual(result.status, "failed")
        self.assertEqual(result.current_progress, Decimal("50"))

    def test_terminal_result_is_stable(self) -> None:
        challenge = make_challenge(
            "no_spend", target_progress=Decimal("30"), current_progress=Decimal("30")
        )
        first = evaluate_challenge(challenge, [], date(2024, 4, 2))

        second = evaluate_challenge(
            first, [expense(date(2024, 3, 3), "10")], date(2024, 4, 20)
        )

        self.assertEqual(first.status, "completed")
        self.assertEqual(second, first)

    def test_terminal_status_is_absorbing_before_end(self) -> None:
        challenge = make_challenge("no_spend", status="failed")

        result = evaluate_challenge(challenge, [], date(2024, 3, 10))

        self.assertEqual(result, challenge)

    def test_not_started_challenge_is_untouched(self) -> None:
        challenge = make_challenge("streak", status="not_started")

        result = evaluate_challenge(challenge, [expense(date(2024, 3, 1), "5")], date(2024, 3, 2))

        self.assertEqual(result, challenge)

    def test_custom_challenge_keeps_manual_progress(self) -> None:
        challenge = make_challenge("custom", current_progress=Decimal("42"))

        result = evaluate_challenge(challenge, [income(date(2024, 3, 2), "10")], date(2024, 3, 5))

        self.assertEqual(result.current_progress, Decimal("42"))
        self.assertEqual(result.status, "active")

    def test_rejects_unknown_type(self) -> None:
        with self.assertRaises(ValueError):
            evaluate_challenge(make_challenge("lottery"), [], date(2024, 3, 5))

    def test_evaluates_collection_with_single_date(self) -> None:
        challenges = [
            make_challenge("save_amount"),
            make_challenge("no_spend", end_date=date(2024, 3, 3), current_progress=Decimal("0")),
        ]
        transactions = [income(date(2024, 3, 2), "120")]

        results = evaluate_challenges(challenges, iter(transactions), date(2024, 3, 10))

        self.assertEqual(results[0].current_progress, Decimal("120"))
        self.assertEqual(results[1].status, "failed")


if __name__ == "__main__":
    unittest.main()
