import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import AlreadyAttributedError, CodeExpiredError, InvalidCodeError, SelfReferralError
from app.models.invite_code import InviteCode
from app.models.invite_quota import InviteQuota
from app.models.referral_edge import AttributionTypeEnum, ReferralEdge
from app.services.capacity_gate import CapacityGate
from app.services.invite_quota_manager import InviteQuotaManager
from app.services.referral_ledger import ReferralLedger


def test_attribute_records_signup_edge(db_session, member, make_application, notifier):
    referred = make_application()
    edge = ReferralLedger(db_session, notifier=notifier).attribute(member.referral_code.lower(), referred.applicant_id)

    assert edge.referrer_id == member.id
    assert edge.referred_id == referred.applicant_id
    assert edge.attribution_type == AttributionTypeEnum.SIGNUP


def test_self_referral_is_rejected(db_session, member, notifier):
    with pytest.raises(SelfReferralError):
        ReferralLedger(db_session, notifier=notifier).attribute(member.referral_code, member.id)
    assert db_session.query(ReferralEdge).count() == 0


def test_first_attribution_wins(db_session, member, make_application, capacity, notifier):
    other = make_application()
    CapacityGate(db_session, notifier=notifier).decide(other.id)
    db_session.refresh(other.applicant)
    referred = make_application()
    ledger = ReferralLedger(db_session, notifier=notifier)

    ledger.attribute(member.referral_code, referred.applicant_id)
    with pytest.raises(AlreadyAttributedError):
        ledger.attribute(other.applicant.referral_code, referred.applicant_id)

    edges = db_session.query(ReferralEdge).filter(ReferralEdge.referred_id == referred.applicant_id).all()
    assert len(edges) == 1
    assert edges[0].referrer_id == member.id


def test_unknown_code(db_session, make_application, notifier):
    referred = make_application()
    with pytest.raises(InvalidCodeError):
        ReferralLedger(db_session, notifier=notifier).attribute("NOPE1234", referred.applicant_id)


def test_bonus_after_every_third_referral(db_session, member, make_application, notifier):
    ledger = ReferralLedger(db_session, notifier=notifier)
    quotas = []
    for _ in range(3):
        ledger.attribute(member.referral_code, make_application().applicant_id)
        quota = db_session.get(InviteQuota, member.id)
        db_session.refresh(quota)
        quotas.append(quota.quota)

    assert quotas == [3, 3, 4]
    assert notifier.of_type("referral_reward") == [member.id]

    for _ in range(2):
        ledger.attribute(member.referral_code, make_application().applicant_id)
    db_session.refresh(quota)
    assert quota.quota == 4
    assert quota.rewards_granted == 1


def test_invite_code_works_as_referral_code(db_session, member, make_application, notifier):
    code = InviteQuotaManager(db_session, notifier=notifier).issue_code(member.id)
    referred = make_application()

    edge = ReferralLedger(db_session, notifier=notifier).attribute(code.code, referred.applicant_id)
    assert edge.referrer_id == member.id


def test_expired_invite_code_cannot_refer(db_session, member, make_application, notifier):
    code = InviteQuotaManager(db_session, notifier=notifier).issue_code(member.id)
    db_session.query(InviteCode).filter(InviteCode.id == code.id).update(
        {InviteCode.expires_at: datetime.now(timezone.utc) - timedelta(days=1)}
    )
    db_session.commit()

    with pytest.raises(CodeExpiredError):
        ReferralLedger(db_session, notifier=notifier).attribute(code.code, make_application().applicant_id)


def test_stats_and_leaderboard(db_session, member, make_application, notifier):
    gate = CapacityGate(db_session, notifier=notifier)
    runner_up = make_application()
    gate.decide(runner_up.id)
    db_session.refresh(runner_up.applicant)
    ledger = ReferralLedger(db_session, notifier=notifier)

    admitted_friend = make_application()
    ledger.attribute(member.referral_code, admitted_friend.applicant_id)
    gate.decide(admitted_friend.id)
    ledger.attribute(member.referral_code, make_application().applicant_id)
    ledger.attribute(runner_up.applicant.referral_code, make_application().applicant_id)

    stats = ledger.stats(member.id)
    assert stats.total_referrals == 2
    assert stats.admitted_referrals == 1
    assert stats.pending_referrals == 1
    assert stats.invites_remaining == 3

    board = ledger.leaderboard(limit=5)
    assert [(row.rank, row.member_id, row.referral_count) for row in board] == [
        (1, member.id, 2),
        (2, runner_up.applicant_id, 1),
    ]


def test_concurrent_attribution_records_one_edge(db_session, member, make_application, session_factory, notifier):
    gate = CapacityGate(db_session, notifier=notifier)
    codes = [member.referral_code]
    for _ in range(3):
        other = make_application()
        gate.decide(other.id)
        db_session.refresh(other.applicant)
        codes.append(other.applicant.referral_code)
    referred = make_application().applicant_id
    outcomes = []
    start = threading.Barrier(len(codes))

    def worker(code):
        db = session_factory()
        try:
            start.wait()
            ReferralLedger(db, notifier=notifier).attribute(code, referred)
            outcomes.append("attributed")
        except AlreadyAttributedError:
            outcomes.append("already_attributed")
        finally:
            db.close()

    threads = [threading.Thread(target=worker, args=(c,)) for c in codes]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes) == ["already_attributed"] * 3 + ["attributed"]
    assert db_session.query(ReferralEdge).filter(ReferralEdge.referred_id == referred).count() == 1
