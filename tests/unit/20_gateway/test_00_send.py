# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Tests for SMTPGateway.send() over an in-memory transport."""

import logging
import re
from email.header import decode_header, make_header

import pytest
from prometheus_client import CollectorRegistry

from smtp_gateway import (
    Attachment,
    EmailGatewayError,
    EmailValidationError,
    GatewayMetrics,
    OutgoingMessage,
    SMTPGateway,
)
from smtp_gateway.errors import TransportError
from smtp_gateway.headers import MAX_LINE_LENGTH
from smtp_gateway.session import SessionState

CONFIG = {
    "host": "smtp.example.com",
    "from_address": "noreply@example.com",
    "from_name": "Robot",
}


@pytest.fixture
def metrics():
    return GatewayMetrics(CollectorRegistry())


@pytest.fixture
def gateway(transport_factory, metrics):
    return SMTPGateway(config=CONFIG, transport_factory=transport_factory, metrics=metrics)


def compose(gateway, subject="Hello", text="Hi Jane"):
    gateway.message.add_recipient("jane@example.com", "Jane Doe")
    gateway.message.subject = subject
    gateway.message.text_plain = text


def sent_headers(transport_factory, index=0):
    return dict(transport_factory.deliveries[index]["headers"])


class TestSuccessfulSend:
    async def test_send_returns_true(self, gateway, transport_factory):
        compose(gateway)

        assert await gateway.send() is True

        delivery = transport_factory.deliveries[0]
        assert delivery["sender"] == "noreply@example.com"
        assert delivery["recipients"] == ["jane@example.com"]
        assert "Hi Jane" in delivery["body"]

    async def test_standard_header_fields(self, gateway, transport_factory):
        compose(gateway)
        await gateway.send()

        headers = sent_headers(transport_factory)
        assert headers["From"] == "Robot <noreply@example.com>"
        assert headers["To"] == "Jane Doe <jane@example.com>"
        assert headers["Subject"] == "Hello"
        assert headers["MIME-Version"] == "1.0"
        assert headers["Content-Type"].startswith("text/plain")
        assert re.fullmatch(r"<[0-9a-f]{32}@.+>", headers["Message-ID"])
        assert headers["Date"]
        assert "Reply-To" not in headers

    async def test_message_id_domain(self, transport_factory, metrics):
        gateway = SMTPGateway(
            config=CONFIG, transport_factory=transport_factory, metrics=metrics, message_id_domain="example.com"
        )
        compose(gateway)
        await gateway.send()

        assert sent_headers(transport_factory)["Message-ID"].endswith("@example.com>")

    async def test_message_ids_are_unique(self, gateway, transport_factory):
        for _ in range(2):
            compose(gateway)
            await gateway.send()

        ids = {sent_headers(transport_factory, i)["Message-ID"] for i in range(2)}
        assert len(ids) == 2

    async def test_composition_is_reset_after_send(self, gateway):
        compose(gateway)
        gateway.message.set_header_field("X-Campaign", "spring")
        gateway.set_envelope_from("bounces@example.com")

        await gateway.send()

        assert gateway.message.recipients == {}
        assert gateway.message.subject is None
        assert gateway.message.text_plain is None
        assert gateway.message.header_fields == {}
        assert gateway.envelope_from is None
        assert gateway.message.sender_address == "noreply@example.com"

    async def test_envelope_from_is_mail_from(self, gateway, transport_factory):
        compose(gateway)
        gateway.set_envelope_from("bounces@example.com")

        await gateway.send()

        delivery = transport_factory.deliveries[0]
        assert delivery["sender"] == "bounces@example.com"
        assert sent_headers(transport_factory)["From"] == "Robot <noreply@example.com>"

    async def test_reply_to(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.set_reply_to("support@example.com", "Support Désk")

        await gateway.send()

        assert sent_headers(transport_factory)["Reply-To"] == "=?UTF-8?Q?Support_D=C3=A9sk?= <support@example.com>"

    async def test_metrics_and_logging(self, gateway, metrics, caplog):
        compose(gateway)
        with caplog.at_level(logging.INFO, logger="SMTPGateway"):
            await gateway.send()

        assert metrics.registry.get_sample_value("smtpgw_sent_total", {"host": "smtp.example.com"}) == 1.0
        assert metrics.registry.get_sample_value("smtpgw_connections_total", {"host": "smtp.example.com"}) == 1.0
        assert "to 1 recipient(s) via smtp.example.com:25" in caplog.text


class TestHeaderEncoding:
    async def test_non_ascii_subject_is_encoded(self, gateway, transport_factory):
        compose(gateway, subject="Résumé für Jürgen")
        await gateway.send()

        subject = sent_headers(transport_factory)["Subject"]
        assert subject.isascii()
        assert str(make_header(decode_header(subject.replace("\r\n", "")))) == "Résumé für Jürgen"

    async def test_long_subject_is_folded(self, gateway, transport_factory):
        subject = " ".join(f"word{i}" for i in range(40))
        compose(gateway, subject=subject)
        await gateway.send()

        rendered = "Subject: " + sent_headers(transport_factory)["Subject"]
        lines = rendered.split("\r\n")
        assert len(lines) > 1
        for line in lines:
            assert len(line) <= MAX_LINE_LENGTH
        assert rendered.replace("\r\n", "") == f"Subject: {subject}"

    async def test_long_non_ascii_subject_folds_between_words(self, gateway, transport_factory):
        subject = " ".join(["Größenänderung"] * 12)
        compose(gateway, subject=subject)
        await gateway.send()

        folded = sent_headers(transport_factory)["Subject"]
        lines = folded.split("\r\n")
        assert len(lines) > 1
        for line in lines[1:]:
            assert len(line) <= MAX_LINE_LENGTH
            assert line.startswith(" =?UTF-8?Q?")
        assert str(make_header(decode_header(folded.replace("\r\n", "")))) == subject

    async def test_numeric_labels_render_bare(self, gateway, transport_factory):
        gateway.message.set_recipients({"Jäne Doe": "jane@x.com", "0": "bob@y.com"})
        gateway.message.text_plain = "Hi"
        await gateway.send()

        assert sent_headers(transport_factory)["To"] == "=?UTF-8?Q?J=C3=A4ne_Doe?= <jane@x.com>, bob@y.com"

    async def test_custom_header_fields(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.set_header_fields({"x-mailer": "smtp-gateway", "X-Note": "Grüße"})

        await gateway.send()

        headers = sent_headers(transport_factory)
        assert headers["X-Mailer"] == "smtp-gateway"
        assert headers["X-Note"] == "=?UTF-8?Q?Gr=C3=BC=C3=9Fe?="

    async def test_computed_fields_win_over_caller_fields(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.set_header_field("From", "spoof@evil.com")
        gateway.message.set_header_field("Subject", "Other")

        await gateway.send()

        headers = sent_headers(transport_factory)
        assert headers["From"] == "Robot <noreply@example.com>"
        assert headers["Subject"] == "Hello"
        assert [name for name, _ in transport_factory.deliveries[0]["headers"]].count("From") == 1


class TestRecipientRouting:
    async def test_cc_is_delivered_and_visible(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.set_header_field("Cc", "Bøb <bob@example.com>")

        await gateway.send()

        delivery = transport_factory.deliveries[0]
        assert delivery["recipients"] == ["jane@example.com", "bob@example.com"]
        assert sent_headers(transport_factory)["Cc"] == "=?UTF-8?Q?B=C3=B8b?= <bob@example.com>"

    async def test_bcc_is_delivered_but_hidden(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.set_header_field("Bcc", "secret@example.com")

        await gateway.send()

        delivery = transport_factory.deliveries[0]
        headers = sent_headers(transport_factory)
        assert "secret@example.com" in delivery["recipients"]
        assert "Bcc" not in headers
        assert all("secret@example.com" not in value for value in headers.values())

    async def test_bcc_recipient_is_hidden_from_to(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.add_recipient("boss@example.com")
        gateway.message.set_header_field("Bcc", "Boss@Example.com")

        await gateway.send()

        assert sent_headers(transport_factory)["To"] == "Jane Doe <jane@example.com>"
        assert transport_factory.deliveries[0]["recipients"] == ["jane@example.com", "boss@example.com"]

    async def test_only_bcc_recipients_gives_undisclosed(self, gateway, transport_factory):
        gateway.message.add_recipient("hidden@example.com")
        gateway.message.set_header_field("Bcc", "hidden@example.com")
        gateway.message.text_plain = "Hi"

        await gateway.send()

        assert sent_headers(transport_factory)["To"] == "undisclosed-recipients:;"


class TestDirectHeaderFields:
    """header_fields written without set_header_field()."""

    async def test_lowercase_bcc_is_delivered_but_hidden(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.header_fields["bcc"] = "secret@example.com"

        await gateway.send()

        delivery = transport_factory.deliveries[0]
        assert delivery["recipients"] == ["jane@example.com", "secret@example.com"]
        assert all(name.lower() != "bcc" for name, _ in delivery["headers"])
        assert all("secret@example.com" not in value for _, value in delivery["headers"])

    async def test_lowercase_cc_is_canonicalised(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.header_fields["cc"] = "cc@example.com"

        await gateway.send()

        assert sent_headers(transport_factory)["Cc"] == "cc@example.com"
        assert "cc@example.com" in transport_factory.deliveries[0]["recipients"]

    async def test_constructor_header_fields(self, transport_factory, metrics):
        gateway = SMTPGateway(config=CONFIG, transport_factory=transport_factory, metrics=metrics)
        gateway.message = OutgoingMessage(
            sender_address="noreply@example.com",
            recipients={0: "jane@example.com"},
            header_fields={"BCC": "audit@example.com", "x-mailer": "smtp-gateway"},
        )

        await gateway.send()

        headers = sent_headers(transport_factory)
        assert "audit@example.com" in transport_factory.deliveries[0]["recipients"]
        assert "BCC" not in headers
        assert headers["X-Mailer"] == "smtp-gateway"

    @pytest.mark.parametrize(
        "name, body",
        [("X-Tag", "x\r\nBcc: leak@example.com"), ("X-Tag", "a\nb"), ("X-Bad\r\nBcc", "x")],
    )
    async def test_line_breaks_rejected_before_network(self, gateway, transport_factory, name, body):
        compose(gateway)
        gateway.message.header_fields[name] = body

        with pytest.raises(EmailValidationError, match="carriage return or newlines"):
            await gateway.send()

        assert transport_factory.created == []
        assert gateway.message.header_fields[name] == body


class TestBody:
    async def test_html_alternative(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.text_html = "<p>Hi Jane</p>"

        await gateway.send()

        headers = sent_headers(transport_factory)
        assert headers["Content-Type"].startswith("multipart/alternative")
        assert "<p>Hi Jane</p>" in transport_factory.deliveries[0]["body"]

    async def test_attachment(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.add_attachment(Attachment("report.csv", b"a,b\r\n1,2\r\n"))

        await gateway.send()

        headers = sent_headers(transport_factory)
        body = transport_factory.deliveries[0]["body"]
        assert headers["Content-Type"].startswith("multipart/mixed")
        assert 'filename="report.csv"' in body
        assert "Hi Jane" in body

    async def test_body_is_ascii(self, gateway, transport_factory):
        compose(gateway, text="Grüße aus München")
        await gateway.send()

        assert transport_factory.deliveries[0]["body"].isascii()


class TestValidation:
    async def test_missing_sender(self, transport_factory):
        gateway = SMTPGateway(config={"host": "smtp.example.com"}, transport_factory=transport_factory)
        compose(gateway)

        with pytest.raises(EmailValidationError, match="sender"):
            await gateway.send()
        assert transport_factory.created == []

    async def test_missing_recipients(self, gateway, transport_factory):
        gateway.message.text_plain = "Hi"

        with pytest.raises(EmailValidationError, match="recipients"):
            await gateway.send()
        assert transport_factory.created == []

    async def test_malformed_recipient(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.add_recipient("not-an-address")

        with pytest.raises(EmailValidationError, match="not-an-address"):
            await gateway.send()
        assert transport_factory.created == []

    async def test_malformed_bcc(self, gateway, transport_factory):
        compose(gateway)
        gateway.message.set_header_field("Bcc", "not-an-address")

        with pytest.raises(EmailValidationError):
            await gateway.send()
        assert transport_factory.created == []


class TestFailures:
    async def test_connection_failure(self, gateway, transport_factory, metrics):
        compose(gateway)
        gateway.message.set_header_field("X-Campaign", "spring")
        gateway.set_envelope_from("bounces@example.com")
        transport_factory.fail_connect = TransportError("Connection refused")

        with pytest.raises(EmailGatewayError, match="Connection refused") as exc_info:
            await gateway.send()

        assert isinstance(exc_info.value.__cause__, TransportError)
        assert metrics.registry.get_sample_value("smtpgw_errors_total", {"host": "smtp.example.com"}) == 1.0
        assert gateway.message.recipients == {"Jane Doe": "jane@example.com"}
        assert gateway.message.subject == "Hello"
        assert gateway.message.text_plain == "Hi Jane"
        assert gateway.message.header_fields == {"X-Campaign": "spring"}
        assert gateway.envelope_from == "bounces@example.com"

    async def test_retry_after_connection_failure(self, gateway, transport_factory):
        compose(gateway)
        transport_factory.fail_connect = TransportError("Connection refused")
        with pytest.raises(EmailGatewayError):
            await gateway.send()

        transport_factory.fail_connect = None
        assert await gateway.send() is True
        assert len(transport_factory.deliveries) == 1

    async def test_rejected_transaction_discards_session(self, gateway, transport_factory, transport_error):
        gateway.open_connection()
        compose(gateway)
        transport_factory.fail_send = transport_error

        with pytest.raises(EmailGatewayError, match="550"):
            await gateway.send()

        assert gateway.session.state is SessionState.CLOSED
        assert transport_factory.created[0].quit_calls == 1

        assert await gateway.send() is True
        assert gateway.session.created == 2

    async def test_failure_is_logged(self, gateway, transport_factory, transport_error, caplog):
        compose(gateway)
        transport_factory.fail_send = transport_error

        with caplog.at_level(logging.ERROR, logger="SMTPGateway"):
            with pytest.raises(EmailGatewayError):
                await gateway.send()

        assert "Mailbox unavailable" in caplog.text


class TestConnectionReuse:
    async def test_without_keep_alive_each_send_closes(self, gateway, transport_factory):
        for _ in range(2):
            compose(gateway)
            await gateway.send()

        assert len(transport_factory.created) == 2
        assert all(t.quit_calls == 1 for t in transport_factory.created)
        assert gateway.session.state is SessionState.CLOSED

    async def test_keep_alive_reuses_one_session(self, gateway, transport_factory):
        assert gateway.open_connection() is True
        for _ in range(3):
            compose(gateway)
            await gateway.send()

        assert gateway.session.created == 1
        assert len(transport_factory.deliveries) == 3
        assert gateway.session.is_open

        assert await gateway.close_connection() is True
        assert transport_factory.created[0].quit_calls == 1
        assert await gateway.close_connection() is False

    async def test_context_manager(self, gateway, transport_factory):
        async with gateway:
            for _ in range(2):
                compose(gateway)
                await gateway.send()
            assert gateway.session.is_open

        assert gateway.session.created == 1
        assert not gateway.session.is_open
        assert gateway.keep_alive is False

    async def test_settings_change_reconnects(self, gateway, transport_factory):
        gateway.open_connection()
        compose(gateway)
        await gateway.send()

        gateway.set_port(2525)
        compose(gateway)
        await gateway.send()

        assert gateway.session.created == 2
        assert transport_factory.created[1].port == 2525
        assert transport_factory.created[0].quit_calls == 1
