"""
Tests for the main loop and the command-line entry point.
"""

import asyncio
import signal
from dataclasses import replace
from unittest.mock import patch

import pytest

import bot as bot_module
from bot import FaroswapBot, load_inputs, main
from loaders import WalletRecord
from utils import InputFileError, LOG_BANNER, setup_logging

from conftest import FakeRouter, RECIPIENTS, make_wallet

KEY_A = "0x" + "a" * 64
KEY_B = "0x" + "b" * 64


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    setup_logging("INFO", None)


def make_bot(config, records, recipients=RECIPIENTS, wallet_factory=None):
    wallets = {}

    def default_factory(record):
        wallets[record.private_key] = make_wallet("0x" + record.private_key[-40:])
        return wallets[record.private_key]

    routers = []

    def router_factory(record):
        routers.append(FakeRouter())
        return routers[-1]

    bot = FaroswapBot(
        config,
        records,
        recipients,
        wallet_factory=wallet_factory or default_factory,
        router_factory=router_factory,
    )
    return bot, wallets, routers


class TestFaroswapBot:

    def test_full_pass_then_sleeps_four_hours(self, fast_config):
        bot, wallets, routers = make_bot(fast_config, [WalletRecord(KEY_A), WalletRecord(KEY_B)])
        waits = []

        async def fake_wait(seconds):
            waits.append(seconds)
            if seconds == fast_config.pass_interval_seconds:
                bot.stop()
            return bot.stopped

        bot._wait = fake_wait

        stats = asyncio.run(bot.run_forever())

        assert stats.operations == 28
        assert stats.swaps_attempted == 22
        assert stats.transfers_attempted == 6
        assert stats.wallets_processed == 2
        assert waits == [fast_config.wallet_delay_seconds] * 2 + [4 * 60 * 60]
        assert bot.pass_count == 1

    def test_wallets_processed_in_file_order(self, fast_config):
        order = []

        def factory(record):
            order.append(record.private_key)
            return make_wallet()

        bot, _, _ = make_bot(fast_config, [WalletRecord(KEY_B), WalletRecord(KEY_A)], wallet_factory=factory)
        asyncio.run(bot.run_forever(max_passes=1))

        assert order == [KEY_B, KEY_A]

    def test_max_passes(self, fast_config):
        config = replace(fast_config, pass_interval_seconds=0)
        bot, _, _ = make_bot(config, [WalletRecord(KEY_A)])

        stats = asyncio.run(bot.run_forever(max_passes=2))

        assert bot.pass_count == 2
        assert stats.operations == 28

    def test_wallet_failure_does_not_stop_pass(self, fast_config):
        def factory(record):
            if record.private_key == KEY_A:
                raise ValueError("bad key")
            return make_wallet()

        bot, _, _ = make_bot(fast_config, [WalletRecord(KEY_A), WalletRecord(KEY_B)], wallet_factory=factory)

        stats = asyncio.run(bot.run_forever(max_passes=1))

        assert stats.wallets_failed == 1
        assert stats.wallets_processed == 2
        assert stats.operations == 14

    def test_runner_error_is_contained(self, fast_config):
        bot, _, _ = make_bot(fast_config, [WalletRecord(KEY_A), WalletRecord(KEY_B)])
        calls = []

        async def boom(self):
            calls.append(self.address)
            if len(calls) == 1:
                raise RuntimeError("unexpected")
            return self.stats

        with patch("trader.WalletRunner.run", boom):
            stats = asyncio.run(bot.run_forever(max_passes=1))

        assert len(calls) == 2
        assert stats.wallets_failed == 1

    def test_stop_before_start(self, fast_config):
        bot, wallets, _ = make_bot(fast_config, [WalletRecord(KEY_A)])
        bot.stop()

        asyncio.run(bot.run_forever())

        assert wallets == {}
        assert bot.pass_count == 0

    def test_stop_interrupts_sleep(self, fast_config):
        config = replace(fast_config, pass_interval_seconds=3600)
        bot, _, _ = make_bot(config, [WalletRecord(KEY_A)])

        async def run():
            task = asyncio.create_task(bot.run_forever())
            while bot.pass_count == 0 or bot.total_stats.wallets_processed == 0:
                await asyncio.sleep(0.01)
            bot.stop()
            return await asyncio.wait_for(task, timeout=5)

        stats = asyncio.run(run())
        assert bot.pass_count == 1
        assert stats.wallets_processed == 1


class HangingRouter:
    """Route service that never answers."""

    async def fetch_route(self, from_token, to_token, user_address, amount):
        await asyncio.sleep(3600)


class TestStopRequests:

    def make_hanging_bot(self, config):
        return FaroswapBot(
            config,
            [WalletRecord(KEY_A)],
            RECIPIENTS,
            wallet_factory=lambda record: make_wallet(),
            router_factory=lambda record: HangingRouter(),
        )

    def test_first_request_waits_for_wallet(self, fast_config):
        bot = self.make_hanging_bot(fast_config)

        async def scenario():
            task = asyncio.ensure_future(bot.run_forever())
            await asyncio.sleep(0.05)
            bot.request_stop()
            await asyncio.sleep(0.05)
            done = task.done()
            task.cancel()
            return done

        assert asyncio.run(scenario()) is False
        assert bot.stopped
        assert not bot.forced

    def test_second_request_cancels_wallet(self, fast_config):
        bot = self.make_hanging_bot(fast_config)

        async def scenario():
            task = asyncio.ensure_future(bot.run_forever())
            await asyncio.sleep(0.05)
            bot.request_stop()
            bot.request_stop()
            return await asyncio.wait_for(task, timeout=5)

        stats = asyncio.run(scenario())

        assert bot.forced
        assert stats.wallets_processed == 0

    def test_request_when_idle_only_stops(self, fast_config):
        bot = self.make_hanging_bot(fast_config)
        bot.request_stop()
        bot.request_stop()
        assert bot.stopped
        assert not bot.forced

    def test_signal_handlers_route_to_request_stop(self, fast_config):
        bot = self.make_hanging_bot(fast_config)

        async def scenario():
            loop = asyncio.get_running_loop()
            with patch.object(loop, "add_signal_handler") as add:
                bot_module._install_signal_handlers(bot)
            return add.call_args_list

        calls = asyncio.run(scenario())

        assert [c.args[0] for c in calls] == [signal.SIGINT, signal.SIGTERM]
        assert all(c.args[1] == bot.request_stop for c in calls)


class TestLoadInputs:

    def test_empty_wallets(self, tmp_path, fast_config):
        wallets = tmp_path / "wallets.txt"
        wallets.write_text("\n")
        recipients = tmp_path / "recipients.txt"
        recipients.write_text(RECIPIENTS[0] + "\n")
        config = replace(fast_config, wallets_file=str(wallets), recipients_file=str(recipients))

        with pytest.raises(InputFileError):
            load_inputs(config)

    def test_empty_recipients(self, tmp_path, fast_config):
        wallets = tmp_path / "wallets.txt"
        wallets.write_text(KEY_A + "\n")
        recipients = tmp_path / "recipients.txt"
        recipients.write_text("")
        config = replace(fast_config, wallets_file=str(wallets), recipients_file=str(recipients))

        with pytest.raises(InputFileError):
            load_inputs(config)


class TestMain:

    def test_empty_wallets_exits_nonzero_before_network(self, tmp_path):
        wallets = tmp_path / "wallets.txt"
        wallets.write_text("")
        recipients = tmp_path / "recipients.txt"
        recipients.write_text(RECIPIENTS[0] + "\n")
        log_file = tmp_path / "faroswap.log"

        with patch.object(bot_module, "build_web3") as build_web3, \
                patch.object(bot_module, "DodoRouter") as router:
            code = main([
                "run",
                "--wallets", str(wallets),
                "--recipients", str(recipients),
                "--log-file", str(log_file),
            ])

        assert code == 1
        build_web3.assert_not_called()
        router.assert_not_called()
        assert log_file.read_text(encoding="utf-8").startswith(LOG_BANNER)

    def test_missing_wallets_file_exits_nonzero(self, tmp_path):
        code = main([
            "run",
            "--wallets", str(tmp_path / "missing.txt"),
            "--recipients", str(tmp_path / "missing.txt"),
            "--log-file", str(tmp_path / "faroswap.log"),
        ])
        assert code == 1

    def test_invalid_config_exits_nonzero(self, tmp_path):
        config_file = tmp_path / "bot_config.yaml"
        config_file.write_text("log_level: verbose\n")

        with patch.object(bot_module, "build_web3") as build_web3:
            code = main([
                "run",
                "--config", str(config_file),
                "--log-file", str(tmp_path / "faroswap.log"),
            ])

        assert code == 1
        build_web3.assert_not_called()

    def test_run_once(self, tmp_path):
        wallets = tmp_path / "wallets.txt"
        wallets.write_text(KEY_A + "\n")
        recipients = tmp_path / "recipients.txt"
        recipients.write_text("\n".join(RECIPIENTS) + "\n")
        config_file = tmp_path / "bot_config.yaml"
        config_file.write_text(
            "retry_delay_seconds: 0\n"
            "receipt_poll_delay_seconds: 0\n"
            "post_tx_delay_seconds: 0\n"
            "wallet_delay_seconds: 0\n"
        )

        with patch.object(bot_module, "PharosWallet", side_effect=lambda *a, **k: make_wallet()), \
                patch.object(bot_module, "DodoRouter", side_effect=lambda *a, **k: FakeRouter()):
            code = main([
                "run", "--once",
                "--config", str(config_file),
                "--wallets", str(wallets),
                "--recipients", str(recipients),
                "--log-file", str(tmp_path / "faroswap.log"),
            ])

        assert code == 0

    def test_init_config(self, tmp_path):
        path = tmp_path / "bot_config.yaml"
        assert main(["init-config", str(path)]) == 0
        assert "chain_id: 688688" in path.read_text()
        assert main(["init-config", str(path)]) == 1

    def test_no_command(self):
        assert main([]) == 2
