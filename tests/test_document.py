import pytest

from subtitlesync.document import NEW_ENTRY_PLACEHOLDER, SubtitleDocument
from subtitlesync.exceptions import EntryNotFoundError, ValidationError
from subtitlesync.models import SubtitleEntry, SubtitleFormat, SubtitleTrack

SRT = "1\n00:00:01,000 --> 00:00:02,000\nOne\n\n2\n00:00:03,000 --> 00:00:04,000\nTwo\n"


def _times(document):
    return [(e.start_time, e.end_time) for e in document]


@pytest.fixture
def document():
    return SubtitleDocument.from_text(SRT, "movie.srt")


def test_from_text_infers_format(document):
    assert document.format is SubtitleFormat.SRT
    assert len(document) == 2
    assert SubtitleDocument.from_text("WEBVTT\n\n00:01.000 --> 00:02.000\nx\n", "pasted").format is SubtitleFormat.VTT


def test_add_entry_to_empty_track_starts_at_player_time():
    document = SubtitleDocument(SubtitleTrack(file_name="new.srt"))
    entry = document.add_entry(player_time=5.0)
    assert (entry.start_time, entry.end_time, entry.text) == (5.0, 7.0, NEW_ENTRY_PLACEHOLDER)


def test_add_entry_follows_latest_cue_and_clamps_to_media(document):
    entry = document.add_entry(player_time=0.0, media_duration=5.0)
    assert (entry.start_time, entry.end_time) == (4.1, 5.0)
    assert document.entries[-1].id == entry.id


def test_update_entry_in_place(document):
    entry_id = document.entries[0].id
    document.update_entry(entry_id, start_time=0.5, text="Changed")
    updated = document.get_entry(entry_id)
    assert (updated.start_time, updated.end_time, updated.text) == (0.5, 2.0, "Changed")


def test_update_entry_rejects_inverted_times(document):
    entry_id = document.entries[0].id
    with pytest.raises(ValidationError):
        document.update_entry(entry_id, end_time=0.5)
    assert document.get_entry(entry_id).end_time == 2.0


def test_unknown_id_raises(document):
    with pytest.raises(EntryNotFoundError):
        document.get_entry("cue-missing")
    with pytest.raises(EntryNotFoundError):
        document.delete_entry("cue-missing")


def test_delete_entry_keeps_other_ids_valid(document):
    first, second = document.entries
    document.delete_entry(first.id)
    assert first.id not in document
    assert document.get_entry(second.id).text == "Two"


def test_shift_forward_and_back(document):
    assert document.shift_times(1.5) == 0
    assert _times(document) == [(2.5, 3.5), (4.5, 5.5)]
    assert document.shift_times(-2.0) == 0
    assert _times(document) == [(0.5, 1.5), (2.5, 3.5)]


def test_negative_shift_drops_cues_collapsed_to_zero(document):
    assert document.shift_times(-2.5) == 1
    assert _times(document) == [(0.5, 1.5)]


def test_shift_drops_cues_past_media_end(document):
    assert document.shift_times(2.5, media_duration=5.0) == 1
    assert _times(document) == [(3.5, 4.5)]


def test_sort_by_time_is_explicit():
    track = SubtitleTrack(file_name="x.srt", entries=[SubtitleEntry(5.0, 6.0, "b"), SubtitleEntry(1.0, 2.0, "a")])
    document = SubtitleDocument(track)
    assert [e.text for e in document] == ["b", "a"]
    document.sort_by_time()
    assert [e.text for e in document] == ["a", "b"]


def test_replace_entries_rejects_duplicate_ids(document):
    entry = SubtitleEntry(0.0, 1.0, "dup")
    with pytest.raises(ValidationError):
        document.replace_entries([entry, entry])
    assert len(document) == 2


def test_export_and_save_infer_format_from_extension(document, tmp_path):
    assert document.export("vtt").startswith("WEBVTT\n\n1\n00:00:01.000 --> 00:00:02.000\nOne\n")
    path = tmp_path / "copy.vtt"
    document.save(str(path))
    reloaded = SubtitleDocument.load(str(path))
    assert reloaded.format is SubtitleFormat.VTT
    assert [(e.start_time, e.end_time, e.text) for e in reloaded] == [(1.0, 2.0, "One"), (3.0, 4.0, "Two")]


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        SubtitleDocument.load(str(tmp_path / "nope.srt"))


def test_entry_invariants():
    with pytest.raises(ValidationError):
        SubtitleEntry(-1.0, 1.0, "x")
    with pytest.raises(ValidationError):
        SubtitleEntry(2.0, 1.0, "x")
