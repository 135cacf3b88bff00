"""
Tests for the Vote Recorder

Tests cover:
- Temporal and status gating
- Membership checks
- Duplicate vote rejection (pre-check and store constraint)
- Tally conservation
- Auto-close on a simple majority
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from daogov.models.base import ProposalStatus
from daogov.models.governance import MemberRole, VoteCreate, VoteType
from daogov.repositories.proposal_repository import VotingClosedError
from daogov.services.results import (
    ALREADY_VOTED,
    NOT_A_MEMBER_VOTE,
    PROPOSAL_NOT_FOUND,
    ErrorKind,
    VotingInactiveReason,
)
from daogov.services.vote_recorder import voting_inactive_reason


@pytest.fixture
def dao(dao_factory):
    return dao_factory()


@pytest.fixture
def proposer(dao, member_factory):
    return member_factory(dao, role=MemberRole.ADMIN, voting_power=19)


class TestVotingInactiveReason:
    """Tests for the voting window check."""

    def test_open_window(self, dao, proposer, proposal_factory, clock):
        proposal = proposal_factory(dao, proposer)
        assert voting_inactive_reason(proposal, clock()) is None

    def test_bounds_are_inclusive(self, dao, proposer, proposal_factory, clock):
        proposal = proposal_factory(dao, proposer)
        assert voting_inactive_reason(proposal, proposal.start_time) is None
        assert voting_inactive_reason(proposal, proposal.end_time) is None

    def test_not_active(self, dao, proposer, proposal_factory, clock):
        proposal = proposal_factory(dao, proposer, status=ProposalStatus.DRAFT)
        assert voting_inactive_reason(proposal, clock()) == VotingInactiveReason.NOT_ACTIVE

    def test_not_open_yet(self, dao, proposer, proposal_factory, clock):
        proposal = proposal_factory(dao, proposer, start_time=clock() + timedelta(hours=1))
        assert voting_inactive_reason(proposal, clock()) == VotingInactiveReason.NOT_OPEN

    def test_expired(self, dao, proposer, proposal_factory, clock):
        proposal = proposal_factory(
            dao,
            proposer,
            start_time=clock() - timedelta(days=8),
            end_time=clock() - timedelta(seconds=1),
        )
        assert voting_inactive_reason(proposal, clock()) == VotingInactiveReason.EXPIRED


class TestCastVoteGating:
    """Votes outside the voting window or status are refused."""

    @pytest.mark.asyncio
    async def test_missing_proposal(self, recorder):
        result = await recorder.cast_vote("missing", "user1", VoteCreate(vote_type="FOR"))

        assert result.success is False
        assert result.error.kind == ErrorKind.NOT_FOUND
        assert result.error.message == PROPOSAL_NOT_FOUND

    @pytest.mark.asyncio
    async def test_before_start(self, recorder, dao, proposer, proposal_factory, clock, store):
        proposal = proposal_factory(dao, proposer, start_time=clock() + timedelta(minutes=5))

        result = await recorder.cast_vote(proposal.id, proposer.user_id, VoteCreate(vote_type="FOR"))

        assert result.error.kind == ErrorKind.VOTING_NOT_ACTIVE
        assert result.error.details["reason"] == "not_open"
        assert store.votes == {}

    @pytest.mark.asyncio
    async def test_after_end(self, recorder, dao, proposer, proposal_factory, clock):
        proposal = proposal_factory(dao, proposer)
        clock.advance(days=7, seconds=1)

        result = await recorder.cast_vote(proposal.id, proposer.user_id, VoteCreate(vote_type="FOR"))

        assert result.error.kind == ErrorKind.VOTING_NOT_ACTIVE
        assert result.error.details["reason"] == "expired"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [
            ProposalStatus.DRAFT,
            ProposalStatus.PASSED,
            ProposalStatus.FAILED,
            ProposalStatus.EXECUTED,
            ProposalStatus.CANCELLED,
        ],
    )
    async def test_status_not_active(self, recorder, dao, proposer, proposal_factory, status):
        proposal = proposal_factory(dao, proposer, status=status)

        result = await recorder.cast_vote(proposal.id, proposer.user_id, VoteCreate(vote_type="FOR"))

        assert result.error.kind == ErrorKind.VOTING_NOT_ACTIVE
        assert result.error.details["reason"] == "not_active"

    @pytest.mark.asyncio
    async def test_non_member(self, recorder, dao, proposer, proposal_factory):
        proposal = proposal_factory(dao, proposer)

        result = await recorder.cast_vote(proposal.id, "outsider", VoteCreate(vote_type="FOR"))

        assert result.error.kind == ErrorKind.FORBIDDEN
        assert result.error.message == NOT_A_MEMBER_VOTE

    @pytest.mark.asyncio
    async def test_member_of_other_dao(self, recorder, dao, proposer, proposal_factory, dao_factory, member_factory):
        other = member_factory(dao_factory(), user_id="elsewhere")
        proposal = proposal_factory(dao, proposer)

        result = await recorder.cast_vote(proposal.id, other.user_id, VoteCreate(vote_type="FOR"))

        assert result.error.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_store_closed_race_maps_to_voting_not_active(
        self, recorder, dao, proposer, proposal_factory, proposal_repo
    ):
        proposal = proposal_factory(dao, proposer)
        proposal_repo.record_vote = AsyncMock(side_effect=VotingClosedError(proposal.id))

        result = await recorder.cast_vote(proposal.id, proposer.user_id, VoteCreate(vote_type="FOR"))

        assert result.error.kind == ErrorKind.VOTING_NOT_ACTIVE
        assert result.error.details["reason"] == "not_active"

    @pytest.mark.asyncio
    async def test_member_removed_mid_vote_is_forbidden(
        self, recorder, dao, proposer, proposal_factory, member_factory, member_repo, store
    ):
        voter = member_factory(dao, voting_power=1)
        proposal = proposal_factory(dao, proposer)
        lookup = member_repo.get_membership

        async def _lookup_then_remove(dao_id, user_id):
            member = await lookup(dao_id, user_id)
            del store.members[member.id]
            return member

        member_repo.get_membership = AsyncMock(side_effect=_lookup_then_remove)

        result = await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="FOR"))

        assert result.error.kind == ErrorKind.FORBIDDEN
        assert result.error.message == NOT_A_MEMBER_VOTE
        assert store.votes == {}


class TestDuplicateVotes:
    """At most one vote per (proposal, member)."""

    @pytest.mark.asyncio
    async def test_second_vote_rejected(self, recorder, dao, proposer, proposal_factory, member_factory, store):
        voter = member_factory(dao, voting_power=1)
        proposal = proposal_factory(dao, proposer, votes_abstain=10)

        first = await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="ABSTAIN"))
        second = await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="FOR"))

        assert first.success is True
        assert second.success is False
        assert second.error.kind == ErrorKind.DUPLICATE_VOTE
        assert second.error.message == ALREADY_VOTED
        assert len(store.votes) == 1
        assert store.proposals[proposal.id].total_votes == 11

    @pytest.mark.asyncio
    async def test_constraint_violation_maps_to_duplicate(
        self, recorder, dao, proposer, proposal_factory, member_factory, proposal_repo
    ):
        """A vote that slips past the pre-check is stopped by the store constraint."""
        voter = member_factory(dao)
        proposal = proposal_factory(dao, proposer, votes_abstain=10)
        await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="ABSTAIN"))

        proposal_repo.get_vote = AsyncMock(return_value=None)
        result = await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="AGAINST"))

        assert result.error.kind == ErrorKind.DUPLICATE_VOTE


class TestTallies:
    """Vote weight and tally bookkeeping."""

    @pytest.mark.asyncio
    async def test_vote_uses_stored_voting_power(self, recorder, dao, proposer, proposal_factory, member_factory):
        voter = member_factory(dao, voting_power=7)
        proposal = proposal_factory(dao, proposer, votes_against=20)

        result = await recorder.cast_vote(
            proposal.id, voter.user_id, VoteCreate(vote_type="FOR", reason="Looks good")
        )

        vote = result.unwrap()
        assert vote.voting_power == 7
        assert vote.vote_type == VoteType.FOR
        assert vote.reason == "Looks good"
        assert vote.member_id == voter.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored_power", [None, 0])
    async def test_unset_voting_power_counts_as_one(
        self, recorder, dao, proposer, proposal_factory, member_factory, stored_power
    ):
        voter = member_factory(dao, voting_power=stored_power)
        proposal = proposal_factory(dao, proposer, votes_against=20)

        vote = (await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="FOR"))).unwrap()

        assert vote.voting_power == 1

    @pytest.mark.asyncio
    async def test_tally_conservation(self, recorder, dao, proposer, proposal_factory, member_factory, store):
        proposal = proposal_factory(dao, proposer)
        ballots = [("ABSTAIN", 4), ("FOR", 3), ("AGAINST", 3), ("ABSTAIN", 2), ("FOR", 1)]

        for vote_type, power in ballots:
            voter = member_factory(dao, voting_power=power)
            await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type=vote_type))
            stored = store.proposals[proposal.id]
            assert stored.votes_for + stored.votes_against + stored.votes_abstain == stored.total_votes

        stored = store.proposals[proposal.id]
        assert stored.total_votes == 13
        assert stored.votes_abstain == 6

    @pytest.mark.asyncio
    async def test_member_activity_updated(self, recorder, dao, proposer, proposal_factory, member_factory, store, clock):
        voter = member_factory(dao)
        proposal = proposal_factory(dao, proposer, votes_against=10)

        await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="FOR"))

        assert store.members[voter.id].votes_participated == 1
        assert store.members[voter.id].last_activity == clock()


class TestAutoClose:
    """A simple majority of votes cast closes voting immediately."""

    @pytest.mark.asyncio
    async def test_majority_for_passes_and_sets_end_time(
        self, recorder, dao, proposer, proposal_factory, member_factory, store, clock
    ):
        proposal = proposal_factory(dao, proposer, votes_against=5)
        voter = member_factory(dao, voting_power=10)
        clock.advance(hours=3)

        await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="FOR"))

        stored = store.proposals[proposal.id]
        assert (stored.votes_for, stored.votes_against, stored.total_votes) == (10, 5, 15)
        assert stored.for_percentage == pytest.approx(66.67, abs=0.01)
        assert stored.status == ProposalStatus.PASSED
        assert stored.end_time == clock()

    @pytest.mark.asyncio
    async def test_majority_against_fails(self, recorder, dao, proposer, proposal_factory, member_factory, store):
        proposal = proposal_factory(dao, proposer, votes_for=2)
        voter = member_factory(dao, voting_power=3)

        await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="AGAINST"))

        assert store.proposals[proposal.id].status == ProposalStatus.FAILED

    @pytest.mark.asyncio
    async def test_auto_close_ignores_proposal_threshold(
        self, recorder, dao, proposer, proposal_factory, member_factory, store
    ):
        """71.4% FOR closes as PASSED even though the proposal asks for 80%."""
        proposal = proposal_factory(dao, proposer, threshold=80, votes_against=10)
        voter = member_factory(dao, voting_power=25)

        await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="FOR"))

        stored = store.proposals[proposal.id]
        assert (stored.votes_for, stored.votes_against, stored.total_votes) == (25, 10, 35)
        assert stored.for_percentage == pytest.approx(71.43, abs=0.01)
        assert stored.status == ProposalStatus.PASSED

    @pytest.mark.asyncio
    async def test_first_vote_decides_alone(self, recorder, dao, proposer, proposal_factory, member_factory, store):
        """With no prior votes a single FOR vote is 100% and closes voting."""
        proposal = proposal_factory(dao, proposer, threshold=60)
        first = member_factory(dao, voting_power=25)
        second = member_factory(dao, voting_power=10)

        await recorder.cast_vote(proposal.id, first.user_id, VoteCreate(vote_type="FOR"))
        late = await recorder.cast_vote(proposal.id, second.user_id, VoteCreate(vote_type="AGAINST"))

        stored = store.proposals[proposal.id]
        assert stored.status == ProposalStatus.PASSED
        assert (stored.votes_for, stored.total_votes) == (25, 25)
        assert late.error.kind == ErrorKind.VOTING_NOT_ACTIVE

    @pytest.mark.asyncio
    async def test_exact_half_stays_open(self, recorder, dao, proposer, proposal_factory, member_factory, store):
        proposal = proposal_factory(dao, proposer, votes_against=5)
        voter = member_factory(dao, voting_power=5)

        await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="FOR"))

        assert store.proposals[proposal.id].status == ProposalStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_abstain_heavy_stays_open(self, recorder, dao, proposer, proposal_factory, member_factory, store):
        proposal = proposal_factory(dao, proposer, votes_abstain=10)
        voter = member_factory(dao, voting_power=4)

        await recorder.cast_vote(proposal.id, voter.user_id, VoteCreate(vote_type="FOR"))

        stored = store.proposals[proposal.id]
        assert stored.status == ProposalStatus.ACTIVE
        assert stored.total_votes == 14
