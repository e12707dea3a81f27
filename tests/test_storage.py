from datetime import timedelta

from bson import ObjectId

from mailconnect.core.db import EMAILS
from mailconnect.models.base import utcnow
from mailconnect.models.email import EmailStatus


async def test_recipients_filtered_by_owner_and_list(storage):
    newsletter = await storage.create_recipient_list("owner-1", "Newsletter", "Monthly")
    await storage.create_recipient("owner-1", "a@x.com", "A", newsletter.id)
    await storage.create_recipient("owner-1", "b@x.com", "B")
    await storage.create_recipient("owner-2", "c@x.com", "C", newsletter.id)

    everyone = await storage.get_recipients("owner-1")
    members = await storage.get_recipients("owner-1", newsletter.id)

    assert sorted(r.email for r in everyone) == ["a@x.com", "b@x.com"]
    assert [r.email for r in members] == ["a@x.com"]


async def test_lookups_with_malformed_ids_return_none(storage):
    assert await storage.get_user("not-an-object-id") is None
    assert await storage.get_email("123") is None
    assert await storage.delete_recipient("nope") is False


async def test_claim_email_succeeds_once(storage):
    email = await storage.create_email("owner-1", "Hi", "<p>Hi</p>", to="a@x.com")

    first = await storage.claim_email(email.id)
    second = await storage.claim_email(email.id)

    assert first is not None
    assert first.status == EmailStatus.SENDING
    assert second is None


async def test_update_email_status_sets_sent_at(storage):
    email = await storage.create_email("owner-1", "Hi", "<p>Hi</p>", to="a@x.com")
    sent_at = utcnow()

    updated = await storage.update_email_status(email.id, EmailStatus.SENT, sent_at=sent_at)

    assert updated.status == EmailStatus.SENT
    assert updated.sent_at is not None
    assert updated.sent_at.tzinfo is not None


async def test_reschedule_refuses_email_in_flight(storage):
    email = await storage.create_email("owner-1", "Hi", "<p>Hi</p>", to="a@x.com")
    await storage.claim_email(email.id)

    assert await storage.update_email_schedule(email.id, utcnow()) is None


async def test_scheduled_scan_spans_all_owners(storage):
    when = utcnow()
    await storage.create_email("owner-1", "A", "a", to="a@x.com", status=EmailStatus.SCHEDULED, scheduled_for=when)
    await storage.create_email("owner-2", "B", "b", to="b@x.com", status=EmailStatus.SCHEDULED, scheduled_for=when)
    await storage.create_email("owner-2", "C", "c", to="c@x.com")

    scheduled = await storage.get_emails_by_status(EmailStatus.SCHEDULED)

    assert sorted(e.owner_id for e in scheduled) == ["owner-1", "owner-2"]


async def test_deleting_list_detaches_its_recipients(storage):
    vip = await storage.create_recipient_list("owner-1", "VIP")
    recipient = await storage.create_recipient("owner-1", "a@x.com", "A", vip.id)

    assert await storage.delete_recipient_list(vip.id) is True
    assert await storage.get_recipient_list(vip.id) is None
    assert (await storage.get_recipient(recipient.id)).list_id is None


async def test_gmail_connection_is_stored_on_user(storage):
    user = await storage.create_user("bob", "hash")
    assert user.gmail_connected is False

    updated = await storage.update_gmail_connection(user.id, "ciphertext", "bob@gmail.com")

    assert updated.gmail_connected is True
    assert updated.gmail_refresh_token == "ciphertext"
    assert updated.gmail_email == "bob@gmail.com"


async def test_reschedule_recovers_abandoned_claim(storage):
    email = await storage.create_email("owner-1", "Hi", "<p>Hi</p>", to="a@x.com")
    await storage.claim_email(email.id)
    await storage._collection(EMAILS).update_one(
        {"_id": ObjectId(email.id)}, {"$set": {"claimed_at": utcnow() - timedelta(hours=1)}}
    )

    rescheduled = await storage.update_email_schedule(email.id, utcnow() + timedelta(hours=1))

    assert rescheduled is not None
    assert rescheduled.status == EmailStatus.SCHEDULED
