import pytest

from gfstools.particleviewer import ParticleFilePlayer, ParticleViewer, ViewTransform
from gfstools.pose import OrientedPoint
from gfstools.slamthread import DoneEvent, MapEvent, ParticleMoveEvent, ResampleEvent


def test_transform_round_trip():
    t = ViewTransform(OrientedPoint(3.0, -2.0), 10.0)
    p = t.pic2map(40, -70)
    assert t.map2pic(p) == (40, -70)


def test_transform_center_maps_to_origin():
    t = ViewTransform(OrientedPoint(1.5, 2.5), 4.0)
    assert t.map2pic(OrientedPoint(1.5, 2.5)) == (0, 0)
    assert t.pic2map(0, 0) == OrientedPoint(1.5, 2.5)


def test_transform_y_axis_points_up():
    t = ViewTransform()
    assert t.map2pic(OrientedPoint(0.0, 1.0))[1] < 0


def test_player_first_update_draws_nothing():
    player = ParticleFilePlayer()
    assert player.feed_line("ODO_UPDATE 2 0 0 0 0 1 1 0 0 5") == []
    assert player.particle_size == 2


def test_player_second_update_pairs_poses():
    player = ParticleFilePlayer()
    player.feed_line("ODO_UPDATE 2 0 0 0 0 1 1 0 0")
    moves = player.feed_line("SM_UPDATE 2 2 0 0 0 3 1 0 0")
    assert moves == [
        (OrientedPoint(0, 0, 0), OrientedPoint(2, 0, 0)),
        (OrientedPoint(1, 1, 0), OrientedPoint(3, 1, 0)),
    ]


def test_player_resample_permutes():
    player = ParticleFilePlayer()
    player.feed_line("ODO_UPDATE 2 0 0 0 0 1 1 0 0")
    player.feed_line("RESAMPLE 2 1 1")
    assert player.new_pose == [OrientedPoint(1, 1, 0), OrientedPoint(1, 1, 0)]


def test_player_size_mismatch():
    player = ParticleFilePlayer()
    player.feed_line("ODO_UPDATE 1 0 0 0 0")
    with pytest.raises(ValueError):
        player.feed_line("ODO_UPDATE 2 0 0 0 0 1 1 0 0")


def test_player_ignores_other_lines():
    player = ParticleFilePlayer()
    assert player.feed_line("LASER_READING 2 1.0 2.0 0 0 0 0") == []
    assert player.feed_line("") == []
    assert player.particle_size == 0


def _move(hyps, weights, scanmatched=True, neff=2.0):
    return ParticleMoveEvent(scanmatched, neff, list(hyps), list(weights))


def test_best_index_from_weights():
    viewer = ParticleViewer()
    viewer.consume_events([_move([OrientedPoint(), OrientedPoint()], [3.0, 1.0])])
    assert viewer.best_index() == 0


def test_best_index_follows_resample():
    viewer = ParticleViewer()
    viewer.consume_events([
        _move([OrientedPoint(), OrientedPoint()], [3.0, 1.0]),
        ResampleEvent([1, 1]),
    ])
    assert viewer.best_index() == 1


def test_unmatched_moves_do_not_count():
    viewer = ParticleViewer()
    viewer.consume_events([
        _move([OrientedPoint(), OrientedPoint()], [1.0, 5.0]),
        _move([OrientedPoint(), OrientedPoint()], [9.0, 0.0], scanmatched=False),
    ])
    assert viewer.best_index() == 1


def test_neff_is_normalized_and_reported():
    seen = []
    viewer = ParticleViewer()
    viewer.neff_listeners.append(seen.append)
    neff = viewer.consume_events([_move([OrientedPoint()] * 4, [0.0] * 4, neff=2.0)])
    assert neff == 0.5
    assert seen == [0.5]


def test_map_and_done_events_leave_history():
    class _Thread:
        stopped = False

        def stop(self):
            self.stopped = True

    thread = _Thread()
    viewer = ParticleViewer(thread)
    pose = OrientedPoint(4.0, 5.0)
    viewer.consume_events([MapEvent("grid", 0, pose), DoneEvent()])
    assert viewer.history == []
    assert viewer.best_map == "grid"
    assert viewer.best_particle_pose == pose
    assert viewer.done and thread.stopped


def test_paths_only_latest_pose_without_show_paths():
    a, b, c, d = (OrientedPoint(i, 0) for i in range(4))
    viewer = ParticleViewer()
    viewer.consume_events([_move([a, b], [0, 1]), _move([c, d], [0, 1])])
    paths = viewer.paths()
    assert paths[0] == (False, [c])
    assert paths[1] == (False, [d])
    assert paths[2] == (True, [d, b])


def test_paths_full_and_without_best():
    a, b, c, d = (OrientedPoint(i, 0) for i in range(4))
    viewer = ParticleViewer()
    viewer.consume_events([_move([a, b], [0, 1]), _move([c, d], [0, 1])])
    viewer.handle_key("p")
    viewer.handle_key("b")
    paths = viewer.paths()
    assert paths == [(False, [c, a]), (False, [d, b])]


def test_handle_key_zoom_and_center():
    viewer = ParticleViewer()
    scale = viewer.transform.scale
    assert viewer.handle_key("+")
    assert viewer.handle_key("-")
    assert viewer.transform.scale == pytest.approx(scale)
    viewer.best_particle_pose = OrientedPoint(7.0, 8.0)
    viewer.handle_key("c")
    assert viewer.transform.center == OrientedPoint(7.0, 8.0)
    assert not viewer.handle_key("x")