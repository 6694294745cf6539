"""Unit tests for the export-only platform tip transforms."""

from fiscal_ledger.core.database.entities import Transaction
from fiscal_ledger.ledger.transform import RelatedContributionLoader, detach, transform_for_export


async def _tip_group(ledger, repos, contribution_payload):
    contribution = await ledger.record_contribution(contribution_payload(amount=11000, platform_tip=1000))
    return contribution, await repos.transactions.get_by_group(contribution.transaction_group)


def _find(rows, kind, type_):
    return next(r for r in rows if r.kind == kind and r.type == type_)


async def test_transform_for_export(ledger, accounts, repos, contribution_payload):
    contribution, rows = await _tip_group(ledger, repos, contribution_payload)

    exported = await transform_for_export(rows, repos.transactions)

    assert len(exported) == len(rows)
    assert _find(exported, "PLATFORM_TIP", "CREDIT").collective_id == 20
    assert _find(exported, "PLATFORM_TIP_DEBT", "CREDIT").from_collective_id == 20
    assert _find(exported, "PLATFORM_TIP_DEBT", "DEBIT").collective_id == 20

    application_fee = _find(exported, "APPLICATION_FEE", "DEBIT")
    assert application_fee.collective_id == 20
    assert not [r for r in exported if r.kind == "PLATFORM_TIP" and r.type == "DEBIT"]

    # Contributions are exported unchanged
    exported_contribution = next(r for r in exported if r.id == contribution.id)
    assert exported_contribution.collective_id == 20
    assert exported_contribution.amount == 10000


async def test_stored_rows_are_untouched(ledger, accounts, repos, contribution_payload):
    contribution, rows = await _tip_group(ledger, repos, contribution_payload)

    await transform_for_export(rows, repos.transactions)

    stored = await repos.transactions.get_by_group(contribution.transaction_group)
    assert _find(stored, "PLATFORM_TIP", "CREDIT").collective_id == 8686
    assert _find(stored, "PLATFORM_TIP", "DEBIT").kind == "PLATFORM_TIP"


async def test_rows_without_tips_pass_through(ledger, accounts, repos, contribution_payload):
    contribution = await ledger.record_contribution(contribution_payload())
    rows = await repos.transactions.get_by_group(contribution.transaction_group)

    exported = await transform_for_export(rows, repos.transactions)

    assert [(r.id, r.kind, r.collective_id) for r in exported] == [(r.id, r.kind, r.collective_id) for r in rows]


async def test_loader_caches_by_group_and_type(ledger, accounts, repos, contribution_payload):
    contribution, rows = await _tip_group(ledger, repos, contribution_payload)
    loader = RelatedContributionLoader(repos.transactions)

    tip_credit = _find(rows, "PLATFORM_TIP", "CREDIT")
    tip_debit = _find(rows, "PLATFORM_TIP", "DEBIT")
    first = await loader.load_many([tip_credit, tip_debit])
    assert [c.type for c in first] == ["CREDIT", "DEBIT"]
    assert first[0].id == contribution.id

    assert len(loader._cache) == 2
    assert (await loader.load_many([tip_credit]))[0] is first[0]


def test_detach_copies_rows():
    row = Transaction(id=1, type="CREDIT", transaction_group="g", collective_id=1, amount=1, currency="USD")
    (copy,) = detach([row])
    copy.collective_id = 2
    assert row.collective_id == 1
