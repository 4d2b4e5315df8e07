"""Tests for the composition engine."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from stockshorts.core.errors import EncodingError
from stockshorts.models.schemas import SourcedClip
from stockshorts.services.composition_engine import (
    BackgroundAudioCache,
    CompositionEngine,
    ProgressMapper,
    map_encoder_percent,
    parse_out_time,
)
from stockshorts.utils.io_utils import RunFiles


def make_clips(base: Path, count: int) -> list[SourcedClip]:
    base.mkdir(parents=True, exist_ok=True)
    clips = []
    for i in range(count):
        path = base / f"clip_{i}.mp4"
        path.write_bytes(b"clip")
        clips.append(SourcedClip(local_path=path, duration_seconds=10))
    return clips


def progress_events(subscription) -> list:
    events = []
    while not subscription._queue.empty():
        events.append(subscription._queue.get_nowait())
    return [e for e in events if e.type == "progress"]


def test_map_encoder_percent():
    assert map_encoder_percent(0) == 35
    assert map_encoder_percent(50) == 55
    assert map_encoder_percent(100) == 75
    assert map_encoder_percent(140) == 75
    assert map_encoder_percent(-5) == 35


def test_progress_mapper_suppresses_repeats():
    mapper = ProgressMapper()

    assert mapper.update(0) is None
    assert mapper.update(10) == 39
    assert mapper.update(10.5) is None
    assert mapper.update(100) == 75
    assert mapper.update(120) is None


def test_parse_out_time():
    assert parse_out_time("out_time_us", "2500000") == 2.5
    assert parse_out_time("out_time_ms", "7500000") == 7.5
    assert parse_out_time("out_time", "00:00:07.500000") == pytest.approx(7.5)
    assert parse_out_time("out_time_us", "N/A") is None
    assert parse_out_time("progress", "continue") is None


def test_build_command_without_music(settings, logger, broadcaster, tmp_path):
    engine = CompositionEngine(settings, logger, broadcaster)
    clips = make_clips(tmp_path / "clips", 6)
    graph = engine.build_graph(6, "gold rush tale")

    cmd = engine.build_command(clips, graph, tmp_path / "out.mp4")

    assert cmd[:3] == ["ffmpeg", "-y", "-hide_banner"]
    assert cmd.count("-i") == 6
    assert cmd[3:6] == ["-an", "-i", str(clips[0].local_path)]
    assert cmd[cmd.index("-map") + 1] == "[vfinal]"
    assert "-c:a" not in cmd
    assert cmd[cmd.index("-c:v") + 1] == "libx264"
    assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
    assert cmd[cmd.index("-r") + 1] == "30"
    assert cmd[cmd.index("-t") + 1] == "15.0"
    assert cmd[cmd.index("-progress") + 1] == "pipe:1"
    assert cmd[-1] == str(tmp_path / "out.mp4")
    assert "fontfile='fonts/DejaVuSans-Bold.ttf'" in cmd[cmd.index("-filter_complex") + 1]


def test_build_command_with_music(settings, logger, broadcaster, tmp_path):
    engine = CompositionEngine(settings, logger, broadcaster)
    clips = make_clips(tmp_path / "clips", 6)
    graph = engine.build_graph(6, "gold rush tale")
    music = tmp_path / "bg_music.mp3"

    cmd = engine.build_command(clips, graph, tmp_path / "out.mp4", music)

    assert cmd.count("-i") == 7
    assert cmd[cmd.index(str(music)) - 1] == "-i"
    maps = [cmd[i + 1] for i, arg in enumerate(cmd) if arg == "-map"]
    assert maps == ["[vfinal]", "6:a"]
    assert cmd[cmd.index("-filter:a") + 1] == "volume=0.15"
    assert "-shortest" in cmd


def test_ffmpeg_path_falls_back_to_bundled_binary(settings, logger, broadcaster, monkeypatch):
    import imageio_ffmpeg

    settings.ffmpeg_binary = None
    monkeypatch.setattr(imageio_ffmpeg, "get_ffmpeg_exe", lambda: "/opt/ffmpeg/bin/ffmpeg")
    engine = CompositionEngine(settings, logger, broadcaster)

    assert engine.ffmpeg_path() == "/opt/ffmpeg/bin/ffmpeg"


@pytest.mark.asyncio
async def test_compose_success_reports_progress(settings, logger, broadcaster, encoder, tmp_path):
    fake = encoder(
        progress_lines=[
            "frame=100",
            "out_time_us=3750000",
            "progress=continue",
            "out_time_us=7500000",
            "out_time_us=7510000",
            "out_time_us=15000000",
            "progress=end",
        ]
    )
    engine = CompositionEngine(settings, logger, broadcaster, spawn=fake)
    files = RunFiles(settings.tmp_dir)
    subscription = broadcaster.subscribe()

    output = await engine.compose(make_clips(tmp_path / "clips", 8), "gold rush tale", files)

    assert output.exists()
    assert output in files.paths
    assert output.name.startswith("out_")
    assert fake.commands[0].count("-i") == 6

    percents = [e.percent for e in progress_events(subscription)]
    assert percents == [45, 55, 75, 82]


@pytest.mark.asyncio
async def test_compose_nonzero_exit(settings, logger, broadcaster, encoder, tmp_path):
    fake = encoder(
        stderr_lines=["Input #0, mov,mp4", "Cannot find a valid font for the family Sans"],
        returncode=1,
    )
    engine = CompositionEngine(settings, logger, broadcaster, spawn=fake)

    with pytest.raises(EncodingError, match="Cannot find a valid font") as exc_info:
        await engine.compose(make_clips(tmp_path / "clips", 6), "gold rush tale", RunFiles(settings.tmp_dir))

    assert exc_info.value.returncode == 1


@pytest.mark.asyncio
async def test_compose_missing_output(settings, logger, broadcaster, encoder, tmp_path):
    engine = CompositionEngine(settings, logger, broadcaster, spawn=encoder(write_output=False))

    with pytest.raises(EncodingError, match="no output"):
        await engine.compose(make_clips(tmp_path / "clips", 6), "gold rush tale", RunFiles(settings.tmp_dir))


@pytest.mark.asyncio
async def test_compose_spawn_failure(settings, logger, broadcaster, tmp_path):
    async def spawn(*cmd, **kwargs):
        raise FileNotFoundError("ffmpeg")

    engine = CompositionEngine(settings, logger, broadcaster, spawn=spawn)

    with pytest.raises(EncodingError, match="Could not start ffmpeg"):
        await engine.compose(make_clips(tmp_path / "clips", 6), "gold rush tale", RunFiles(settings.tmp_dir))


@pytest.mark.asyncio
async def test_compose_timeout_kills_encoder(settings, logger, broadcaster, encoder, tmp_path):
    settings.encoder_timeout_seconds = 0.05
    fake = encoder(hang=True, write_output=False)
    engine = CompositionEngine(settings, logger, broadcaster, spawn=fake)

    with pytest.raises(EncodingError, match="timed out"):
        await engine.compose(make_clips(tmp_path / "clips", 6), "gold rush tale", RunFiles(settings.tmp_dir))

    assert fake.process.killed


@pytest.mark.asyncio
async def test_compose_timeout_when_encoder_already_exited(settings, logger, broadcaster, encoder, tmp_path):
    settings.encoder_timeout_seconds = 0.05
    fake = encoder(hang=True, write_output=False, exited_before_kill=True)
    engine = CompositionEngine(settings, logger, broadcaster, spawn=fake)

    with pytest.raises(EncodingError, match="timed out"):
        await engine.compose(make_clips(tmp_path / "clips", 6), "gold rush tale", RunFiles(settings.tmp_dir))


@pytest.mark.asyncio
async def test_compose_without_clips(settings, logger, broadcaster):
    engine = CompositionEngine(settings, logger, broadcaster)

    with pytest.raises(EncodingError):
        await engine.compose([], "gold rush tale", RunFiles(settings.tmp_dir))


@pytest.mark.asyncio
async def test_audio_cache_unconfigured(settings, logger):
    cache = BackgroundAudioCache(settings, logger, session=MagicMock())

    assert await cache.ensure() is None
    cache.session.get.assert_not_called()


@pytest.mark.asyncio
async def test_audio_cache_downloads_once(settings, logger):
    settings.bg_music_url = "https://cdn.example/music.mp3"
    session = MagicMock()
    response = MagicMock(ok=True, status_code=200)
    response.iter_content.return_value = [b"ID3"]
    session.get.return_value = response
    cache = BackgroundAudioCache(settings, logger, session=session)

    first = await cache.ensure()
    second = await cache.ensure()

    assert first == second == Path(settings.tmp_dir) / "bg_music.mp3"
    assert first.read_bytes() == b"ID3"
    session.get.assert_called_once()


@pytest.mark.asyncio
async def test_audio_cache_download_failure_continues_without_music(settings, logger):
    settings.bg_music_url = "https://cdn.example/music.mp3"
    session = MagicMock()
    session.get.return_value = MagicMock(ok=False, status_code=404)
    cache = BackgroundAudioCache(settings, logger, session=session)

    assert await cache.ensure() is None


@pytest.mark.asyncio
async def test_audio_cache_local_write_failure_continues_without_music(settings, logger):
    settings.bg_music_url = "https://cdn.example/music.mp3"
    # a directory where the track should go makes the local write fail
    (Path(settings.tmp_dir) / "bg_music.mp3").mkdir(parents=True)
    session = MagicMock()
    response = MagicMock(ok=True, status_code=200)
    response.iter_content.return_value = [b"ID3"]
    session.get.return_value = response
    cache = BackgroundAudioCache(settings, logger, session=session)

    assert await cache.ensure() is None
