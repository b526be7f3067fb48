"""
Concurrency tests: parallel operations keep money conserved
"""

import os
import random
import tempfile
import threading
from decimal import Decimal
from datetime import datetime, timedelta, timezone

from game_bank.api.system import BankSystem
from game_bank.config import GameBankConfig
from game_bank.errors import BankingError
from game_bank.notifications import InMemoryNotificationSink
from game_bank.storage import InMemoryStorage, SQLiteStorage


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
CONFIG = GameBankConfig(database_url="memory://", settlement_enabled=False, store_max_retries=10)


def build_system(storage):
    system = BankSystem(storage=storage, config=CONFIG, notification_sink=InMemoryNotificationSink())
    system.transaction_processor.clock = lambda: T0
    return system


def run_threads(target, count):
    threads = [threading.Thread(target=target, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    assert not any(thread.is_alive() for thread in threads)


def random_transfers(systems, account_ids, rounds, errors):
    """Worker body: random transfers, business rejections are expected"""
    def worker(index):
        rng = random.Random(index)
        system = systems[index % len(systems)]
        for _ in range(rounds):
            sender, recipient = rng.sample(account_ids, 2)
            amount = Decimal(rng.randint(1, 400))
            try:
                system.transaction_processor.transfer(sender, recipient, amount)
            except BankingError as e:
                if e.kind not in ("insufficient_funds",):
                    errors.append(e)
            except Exception as e:
                errors.append(e)
    return worker


class TestConcurrentTransfers:

    def _check_conservation(self, system, account_ids, expected_total):
        accounts = [system.account_manager.get_account(a) for a in account_ids]
        assert all(account.balance >= 0 for account in accounts)
        assert sum(account.balance for account in accounts) == expected_total

        # Every account balance matches its ledger history
        for account in accounts:
            entries = system.ledger.get_entries_for_account(account.id)
            assert sum(e.signed_amount for e in entries) == account.balance

    def test_in_memory(self):
        system = build_system(InMemoryStorage())
        account_ids = [
            system.account_manager.create_account(f"player{i}", initial_balance=Decimal("500")).id
            for i in range(5)
        ]
        errors = []

        run_threads(random_transfers([system], account_ids, 40, errors), 8)

        assert errors == []
        self._check_conservation(system, account_ids, Decimal("2500.00"))

    def test_sqlite_file(self):
        fd, path = tempfile.mkstemp(suffix=".db")
        os.close(fd)
        storage = SQLiteStorage(path)
        try:
            system = build_system(storage)
            account_ids = [
                system.account_manager.create_account(f"player{i}", initial_balance=Decimal("300")).id
                for i in range(4)
            ]
            errors = []

            run_threads(random_transfers([system], account_ids, 25, errors), 6)

            assert errors == []
            self._check_conservation(system, account_ids, Decimal("1200.00"))
        finally:
            storage.close()
            os.unlink(path)

    def test_two_connections_to_one_file(self):
        fd, path = tempfile.mkstemp(suffix=".db")
        os.close(fd)
        first = SQLiteStorage(path, lock_timeout=10.0)
        second = SQLiteStorage(path, lock_timeout=10.0)
        try:
            systems = [build_system(first), build_system(second)]
            account_ids = [
                systems[0].account_manager.create_account(f"player{i}", initial_balance=Decimal("300")).id
                for i in range(3)
            ]
            errors = []

            run_threads(random_transfers(systems, account_ids, 15, errors), 4)

            assert errors == []
            self._check_conservation(systems[1], account_ids, Decimal("900.00"))
        finally:
            first.close()
            second.close()
            os.unlink(path)


class TestConcurrentBids:

    def test_bidding_race_keeps_escrow_balanced(self):
        system = build_system(InMemoryStorage())
        processor = system.transaction_processor
        accounts = system.account_manager
        bidders = [
            accounts.create_account(f"bidder{i}", initial_balance=Decimal("1000")).id
            for i in range(6)
        ]
        processor.start_auction(T0 + timedelta(hours=1), lot="Crown")
        errors = []

        def worker(index):
            rng = random.Random(index)
            for _ in range(20):
                amount = Decimal(rng.randint(1, 900))
                try:
                    processor.place_bid(bidders[index], amount)
                except BankingError as e:
                    if e.kind not in ("conflict", "insufficient_funds"):
                        errors.append(e)

        run_threads(worker, len(bidders))

        assert errors == []
        state = system.auction_manager.get_state()
        held = state.highest_amount
        balances = [accounts.get_account(b).balance for b in bidders]
        assert all(balance >= 0 for balance in balances)
        assert sum(balances) + held == Decimal("6000.00")

        # Only the leader is out of pocket
        leader = state.highest_bid.account_id
        for bidder, balance in zip(bidders, balances):
            if bidder == leader:
                assert balance == Decimal("1000.00") - held
            else:
                assert balance == Decimal("1000.00")
