from geodrop.tagging import derive_content_metadata, derive_tags, summarize_text


def test_short_text_is_its_own_summary():
    assert summarize_text("Meet at the  north gate.") == "Meet at the north gate."


def test_long_single_sentence_is_truncated():
    text = "word " * 100
    summary = summarize_text(text, max_length=20)
    assert summary.endswith("...")
    assert len(summary) == 23


def test_summary_prefers_frequent_terms():
    text = (
        "The budget review covers the budget for every team. "
        "Lunch is at noon. "
        "Budget approvals need a second budget signature before Friday."
    )
    summary = summarize_text(text, max_length=70)
    assert "budget" in summary.lower()
    assert "Lunch" not in summary


def test_tags_from_media_type_and_name():
    assert derive_tags("team-photo.JPG", "image/jpeg") == ["image", "jpg"]
    assert derive_tags("deck.pptx", "application/vnd.ms-powerpoint") == ["presentation", "pptx"]


def test_metadata_for_text_payload():
    derived = derive_content_metadata(
        "meeting_notes.txt",
        "text/plain",
        b"Agenda for the offsite. Travel details follow.",
    )
    assert derived["tags"] == ["text", "document", "txt"]
    assert derived["keywords"][:2] == ["meeting", "notes"]
    assert "agenda" in derived["keywords"]
    assert derived["summary"] == "Agenda for the offsite. Travel details follow."


def test_binary_payload_has_no_summary():
    derived = derive_content_metadata("clip.mp4", "video/mp4", b"\x00\x01\x02")
    assert derived["summary"] is None
    assert derived["tags"] == ["video", "mp4"]
