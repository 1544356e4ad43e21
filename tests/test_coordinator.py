"""Pruebas del coordinador de la elección.

Tests for the election coordinator.
"""

import asyncio

from escrutinio.clients.wallet import ACCOUNTS_CHANGED, CHAIN_CHANGED
from escrutinio.coordinator import ElectionCoordinator
from escrutinio.models import ElectionPhase, RoleState

from fakes import ADMIN, ALICE_VOTER, BOB_VOTER, SEPOLIA, FakeLedger, FakeWallet, InMemoryPublisher


def test_start_loads_session_roles_and_phase(make_coordinator, ledger, wallet):
    ledger.candidates = ["Alice"]
    coordinator = make_coordinator()

    async def run():
        outcome = await coordinator.start()
        polling = coordinator.election.polling
        await coordinator.teardown()
        return outcome, polling

    outcome, polling = asyncio.run(run())

    assert outcome.ok
    assert outcome.value == ADMIN
    state = coordinator.state
    assert state.roles == RoleState(is_admin=True)
    assert state.phase is ElectionPhase.ACTIVE
    assert state.candidates == ("Alice",)
    assert state.live_tally.as_dict() == {"Alice": 0}
    assert polling
    assert not coordinator.election.polling
    assert wallet.listeners.count(ACCOUNTS_CHANGED) == 0
    assert wallet.listeners.count(CHAIN_CHANGED) == 0


def test_network_mismatch_blocks_writes_without_ledger_calls(make_coordinator, ledger, wallet):
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        wallet.chain_id = 1
        wallet.switch_fails = True
        before = len(ledger.calls)
        outcomes = [
            await coordinator.register_candidate("Alice"),
            await coordinator.register_voter(ALICE_VOTER),
            await coordinator.vote("Alice"),
            await coordinator.end_election(),
        ]
        after = len(ledger.calls)
        await coordinator.teardown()
        return outcomes, before, after

    outcomes, before, after = asyncio.run(run())

    assert [outcome.kind for outcome in outcomes] == ["wrong_network"] * 4
    assert before == after
    assert ledger.write_calls == []
    assert coordinator.state.error.kind == "wrong_network"


def test_network_mismatch_switches_provider_and_proceeds(make_coordinator, ledger, wallet):
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        wallet.chain_id = "0x1"
        outcome = await coordinator.register_candidate("Alice")
        await coordinator.teardown()
        return outcome

    outcome = asyncio.run(run())
    assert outcome.ok
    assert wallet.switch_calls == [SEPOLIA]
    assert coordinator.state.candidates == ("Alice",)


def test_local_validation_makes_no_ledger_calls(make_coordinator, ledger):
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        before = len(ledger.calls)
        outcomes = [
            await coordinator.register_candidate("   "),
            await coordinator.register_voter("0x12345"),
            await coordinator.vote(""),
        ]
        return outcomes, before, len(ledger.calls)

    outcomes, before, after = asyncio.run(run())

    assert [outcome.kind for outcome in outcomes] == [
        "invalid_candidate_name",
        "invalid_address",
        "invalid_candidate_name",
    ]
    assert outcomes[0].message == "Please enter a candidate name"
    assert outcomes[1].message == "Invalid Ethereum address format"
    assert before == after


def test_admin_actions_require_admin():
    ledger = FakeLedger()
    wallet = FakeWallet([ALICE_VOTER], ledger=ledger)

    async def run():
        coordinator = ElectionCoordinator(wallet, ledger, InMemoryPublisher(), expected_chain_id=SEPOLIA)
        await coordinator.start()
        outcomes = [await coordinator.register_candidate("Alice"), await coordinator.end_election()]
        await coordinator.teardown()
        return outcomes

    outcomes = asyncio.run(run())
    assert [outcome.kind for outcome in outcomes] == ["not_admin", "not_admin"]
    assert ledger.write_calls == []


def test_failure_leaves_other_slices_untouched(make_coordinator, ledger):
    ledger.candidates = ["Alice", "Bob"]
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        before = coordinator.state
        outcome = await coordinator.vote("Alice")
        return before, outcome

    before, outcome = asyncio.run(run())
    after = coordinator.state

    assert not outcome.ok
    assert outcome.kind == "not_registered"
    assert after.error.kind == "not_registered"
    assert after.message == "You are not a registered voter."
    assert not after.loading
    assert after.candidates == before.candidates
    assert after.roles == before.roles
    assert after.live_tally == before.live_tally
    assert after.phase == before.phase


def test_vote_uses_fresh_has_voted(make_coordinator, ledger, wallet):
    ledger.registered.add(ADMIN.lower())
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        assert coordinator.state.roles.is_registered_voter
        ledger.voted.add(ADMIN.lower())
        return await coordinator.vote("Alice")

    outcome = asyncio.run(run())
    assert outcome.kind == "already_voted"
    assert "vote" not in ledger.calls


def test_register_own_address_flips_voter_flag(make_coordinator):
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        return await coordinator.register_voter(ADMIN.lower())

    outcome = asyncio.run(run())
    assert outcome.ok
    assert outcome.message == "Voter registered successfully!"
    assert coordinator.state.roles.is_registered_voter


def test_account_change_recomputes_roles_and_polling(make_coordinator, ledger, wallet):
    ledger.registered.add(ALICE_VOTER)
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        assert coordinator.election.polling
        await wallet.switch_account(ALICE_VOTER)
        voter_state = coordinator.state
        voter_polling = coordinator.election.polling
        await wallet.switch_account(ADMIN)
        admin_polling = coordinator.election.polling
        await coordinator.teardown()
        return voter_state, voter_polling, admin_polling

    voter_state, voter_polling, admin_polling = asyncio.run(run())

    assert voter_state.session.account == ALICE_VOTER
    assert voter_state.roles == RoleState(is_admin=False, is_registered_voter=True, has_voted=False)
    assert not voter_polling
    assert admin_polling


def test_account_change_resolution_failure_clears_roles(make_coordinator, ledger, wallet):
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        ledger.fail("admin", ConnectionError("rpc down"))
        await wallet.switch_account(BOB_VOTER)
        await coordinator.teardown()

    asyncio.run(run())
    assert coordinator.state.roles == RoleState()
    assert coordinator.state.error.kind == "resolution"


def test_network_change_triggers_hard_reset(make_coordinator, ledger, wallet):
    reloads = []

    async def reload():
        reloads.append(True)

    coordinator = make_coordinator(reload=reload)
    ledger.candidates = ["Alice"]

    async def run():
        await coordinator.start()
        await wallet.change_chain(1)

    asyncio.run(run())

    state = coordinator.state
    assert reloads == [True]
    assert not state.session.connected
    assert state.session.network_id == 1
    assert state.candidates == ()
    assert state.roles == RoleState()
    assert not coordinator.election.polling
    assert wallet.listeners.count(ACCOUNTS_CHANGED) == 0
    assert wallet.listeners.count(CHAIN_CHANGED) == 0


def test_subscribers_receive_snapshots_until_disposed(make_coordinator):
    coordinator = make_coordinator()
    views = []
    subscription = coordinator.subscribe(views.append)

    async def run():
        await coordinator.start()
        seen = len(views)
        subscription.dispose()
        subscription.dispose()
        await coordinator.refresh()
        await coordinator.teardown()
        return seen

    seen = asyncio.run(run())
    assert seen > 0
    assert len(views) == seen
    assert views[-1].session.connected


def test_tally_failure_surfaces_closed_unpublished_then_resumes(make_coordinator, ledger, publisher):
    ledger.candidates = ["Alice"]
    ledger.fail("get_final_results", ConnectionError("rpc down"))
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        failed = await coordinator.end_election()
        failed_state = coordinator.state
        retried = await coordinator.end_election()
        await coordinator.teardown()
        return failed, failed_state, retried

    failed, failed_state, retried = asyncio.run(run())

    assert failed.kind == "tally_read"
    assert failed_state.phase is ElectionPhase.CLOSED
    assert not failed_state.publication.is_published
    assert failed_state.progress is None
    assert retried.ok
    assert ledger.count("close_election") == 1
    assert coordinator.state.publication.content_hash == ledger.results_hash


def test_end_to_end_alice_bob(make_coordinator, ledger, wallet, publisher):
    coordinator = make_coordinator()
    messages = []
    coordinator.subscribe(lambda view: messages.append(view.message))

    async def run():
        await coordinator.start()
        assert (await coordinator.register_candidate("Alice")).ok
        assert (await coordinator.register_candidate("Bob")).ok
        assert (await coordinator.register_voter(ALICE_VOTER)).ok

        await wallet.switch_account(ALICE_VOTER)
        assert coordinator.state.roles.is_registered_voter
        voted = await coordinator.vote("Alice")
        assert voted.ok
        assert coordinator.state.roles.has_voted
        assert (await coordinator.vote("Alice")).kind == "already_voted"

        await wallet.switch_account(ADMIN)
        closed = await coordinator.end_election()
        verified = await coordinator.verify_results()
        await coordinator.teardown()
        return closed, verified

    closed, verified = asyncio.run(run())

    assert closed.ok
    assert closed.message == "Election closed successfully!"
    assert verified.ok
    state = coordinator.state
    assert state.phase is ElectionPhase.CLOSED
    assert state.live_tally is None
    assert state.final_tally.as_dict() == {"Alice": 1, "Bob": 0}
    assert state.publication.content_hash == ledger.results_hash
    assert ledger.count("close_election") == 1
    assert ledger.count("store_election_results_ipfs") == 1

    document = asyncio.run(publisher.retrieve(state.publication.content_hash))
    assert document["results"] == {"Alice": 1, "Bob": 0}
    assert document["candidates"] == [{"name": "Alice", "votes": 1}, {"name": "Bob", "votes": 0}]

    for step_message in (
        "Closing election... Please wait for confirmation.",
        "Reading final results...",
        "Uploading results to IPFS...",
        "Storing IPFS hash on blockchain...",
    ):
        assert step_message in messages


def test_end_election_when_already_published(make_coordinator, ledger):
    ledger.candidates = ["Alice"]
    ledger.ended = True
    ledger.active = False
    ledger.results_hash = "bafyexisting"
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        return await coordinator.end_election()

    outcome = asyncio.run(run())
    assert outcome.ok
    assert outcome.message == "Election results already published: bafyexisting"
    assert ledger.write_calls == []


def test_writes_after_close_are_rejected_locally(make_coordinator, ledger):
    ledger.ended = True
    ledger.active = False
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        return await coordinator.register_candidate("Carol")

    outcome = asyncio.run(run())
    assert coordinator.state.phase is ElectionPhase.CLOSED
    assert outcome.kind == "election_closed"
    assert ledger.write_calls == []


def test_start_without_provider_reports_error(ledger, publisher):
    coordinator = ElectionCoordinator(None, ledger, publisher, expected_chain_id=SEPOLIA)
    outcome = asyncio.run(coordinator.start())
    assert not outcome.ok
    assert outcome.kind == "no_provider"
    assert ledger.calls == []


class GatedTransaction:
    def __init__(self, inner, gate):
        self.tx_hash = inner.tx_hash
        self._inner = inner
        self._gate = gate

    async def wait(self):
        await self._gate.wait()
        return await self._inner.wait()


class GatedCloseLedger(FakeLedger):
    gate = None

    async def close_election(self):
        return GatedTransaction(await super().close_election(), self.gate)


class SwitchEmittingWallet(FakeWallet):
    async def switch_chain(self, chain_id):
        await super().switch_chain(chain_id)
        await self.change_chain(chain_id)


def test_close_in_flight_across_network_reset_is_not_resubmitted(publisher):
    ledger = GatedCloseLedger()
    ledger.candidates = ["Alice"]
    wallet = FakeWallet(ledger=ledger)
    coordinator = ElectionCoordinator(wallet, ledger, publisher, expected_chain_id=SEPOLIA, poll_interval=60.0)

    async def run():
        ledger.gate = asyncio.Event()
        await coordinator.start()
        first = asyncio.create_task(coordinator.end_election())
        while ledger.count("close_election") == 0:
            await asyncio.sleep(0)
        await wallet.change_chain(SEPOLIA)
        await coordinator.start()
        second = await coordinator.end_election()
        ledger.gate.set()
        first_outcome = await first
        await coordinator.teardown()
        return first_outcome, second

    first_outcome, second = asyncio.run(run())

    assert second.kind == "pipeline_busy"
    assert first_outcome.ok
    assert ledger.count("close_election") == 1
    assert ledger.count("store_election_results_ipfs") == 1


def test_chain_changed_during_switch_aborts_before_ledger_write(ledger, publisher):
    wallet = SwitchEmittingWallet(ledger=ledger)
    coordinator = ElectionCoordinator(wallet, ledger, publisher, expected_chain_id=SEPOLIA, poll_interval=60.0)

    async def run():
        await coordinator.start()
        wallet.chain_id = 1
        return await coordinator.register_candidate("Alice")

    outcome = asyncio.run(run())

    assert not outcome.ok
    assert outcome.kind == "network_mismatch"
    assert wallet.switch_calls == [SEPOLIA]
    assert ledger.write_calls == []
    state = coordinator.state
    assert not state.session.connected
    assert state.candidates == ()
    assert state.error.kind == "network_mismatch"


def test_vote_refreshes_live_tally(make_coordinator, ledger):
    ledger.candidates = ["Alice", "Bob"]
    ledger.registered.add(ADMIN.lower())
    coordinator = make_coordinator()

    async def run():
        await coordinator.start()
        before = coordinator.state.live_tally.as_dict()
        outcome = await coordinator.vote("Alice")
        await coordinator.teardown()
        return before, outcome

    before, outcome = asyncio.run(run())

    assert outcome.ok
    assert before == {"Alice": 0, "Bob": 0}
    assert coordinator.state.live_tally.as_dict() == {"Alice": 1, "Bob": 0}
    assert coordinator.state.roles.has_voted
