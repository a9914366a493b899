"""Tests for the recording locator and recording paths."""

import pytest

from callcenter.calls.correlator import CallCorrelator
from callcenter.calls.exceptions import CallNotFoundError, RecordingPathError
from callcenter.calls.recordings import (
    RecordingLocator,
    recording_content_type,
    recording_path,
)
from conftest import make_leg


class TestRecordingLocator:
    @pytest.mark.asyncio
    async def test_recording_from_sibling_leg(
        self, correlator: CallCorrelator, seed_legs
    ) -> None:
        await seed_legs(
            make_leg(
                uniqueid="1700000000.1",
                linkedid="1700000000.1",
                recordingfile="q-305-79990001111-20240510-100000-1700000000.1.wav",
            ),
            make_leg(
                uniqueid="1700000000.2",
                linkedid="1700000000.1",
                dcontext="from-queue",
                dstchannel="PJSIP/101-00000002",
                disposition="ANSWERED",
                billsec=30,
            ),
        )
        locator = RecordingLocator(correlator)

        call = await locator.resolve("1700000000.2")

        assert call.id == "1700000000.2"
        assert call.recording_id == "q-305-79990001111-20240510-100000-1700000000.1.wav"

    @pytest.mark.asyncio
    async def test_own_recording_wins(self, correlator: CallCorrelator, seed_legs) -> None:
        await seed_legs(
            make_leg(
                uniqueid="1700000000.1",
                linkedid="1700000000.1",
                recordingfile="q-305-20240510-100000-a.wav",
            ),
            make_leg(
                uniqueid="1700000000.2",
                linkedid="1700000000.1",
                recordingfile="/monitor/out-101-20240510-100005-b.wav",
            ),
        )
        locator = RecordingLocator(correlator)

        call = await locator.resolve("1700000000.2")

        assert call.recording_id == "out-101-20240510-100005-b.wav"

    @pytest.mark.asyncio
    async def test_no_recording_anywhere(self, correlator: CallCorrelator, seed_legs) -> None:
        await seed_legs(make_leg(uniqueid="1700000000.1", linkedid="1700000000.1"))
        locator = RecordingLocator(correlator)

        call = await locator.resolve("1700000000.1")

        assert call.recording_id is None

    @pytest.mark.asyncio
    async def test_unknown_call(self, correlator: CallCorrelator, seed_legs) -> None:
        locator = RecordingLocator(correlator)

        with pytest.raises(CallNotFoundError):
            await locator.resolve("1700000000.1")


class TestRecordingPath:
    def test_dated_directory(self) -> None:
        assert (
            recording_path("q-305-79990001111-20240510-100000-1700000000.1.wav", "/var/spool/monitor")
            == "/var/spool/monitor/2024/05/10/q-305-79990001111-20240510-100000-1700000000.1.wav"
        )

    def test_trailing_slash_and_directories_in_id(self) -> None:
        assert (
            recording_path("old/out-101-20231231-235959-x.mp3", "/rec/")
            == "/rec/2023/12/31/out-101-20231231-235959-x.mp3"
        )

    @pytest.mark.parametrize(
        "recording_id",
        [
            "q-305-89161234567-20240102-080910-1704182950.12.wav",
            "out-201905170-20240102-080910-1.wav",
            "external-79990001111-20240102-080910.wav",
        ],
    )
    def test_long_numbers_before_stamp(self, recording_id: str) -> None:
        assert recording_path(recording_id, "/rec") == f"/rec/2024/01/02/{recording_id}"

    @pytest.mark.parametrize("recording_id", ["", "no-date-here.wav", "20240510.wav"])
    def test_undated_name(self, recording_id: str) -> None:
        with pytest.raises(RecordingPathError):
            recording_path(recording_id, "/rec")

    def test_content_type(self) -> None:
        assert recording_content_type("a.MP3") == "audio/mpeg"
        assert recording_content_type("a.wav") == "audio/wav"
