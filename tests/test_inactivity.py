from guessteam.services.games import engine, inactivity, store
from guessteam.services.games.inactivity import InactivityMonitor


def test_monitor_tracks_idle_players():
    monitor = InactivityMonitor(room_id=1, timeout=45)
    monitor.watch([1, 2, 3], now=100.0)
    monitor.touch(2, now=130.0)

    assert monitor.idle_players(now=140.0) == []
    assert monitor.idle_players(now=145.0) == [1, 3]
    assert monitor.idle_players(now=180.0) == [1, 3, 2]


def test_monitor_longest_idle_first():
    monitor = InactivityMonitor(room_id=1, timeout=10)
    monitor.watch([1], now=5.0)
    monitor.watch([1, 2], now=0.0)
    assert monitor.last_seen(1) == 5.0
    assert monitor.idle_players(now=20.0) == [2, 1]


def test_watch_drops_departed_players():
    monitor = InactivityMonitor(room_id=1, timeout=10)
    monitor.watch([1, 2], now=0.0)
    monitor.watch([2], now=50.0)
    assert monitor.last_seen(1) is None
    assert monitor.last_seen(2) == 0.0
    monitor.forget(2)
    assert monitor.idle_players(now=100.0) == []


def test_cancelled_monitor_ignores_touches():
    monitor = InactivityMonitor(room_id=1, timeout=10)
    monitor.watch([1], now=0.0)
    monitor.cancel()
    monitor.touch(1, now=5.0)
    assert monitor.cancelled is True
    assert monitor.last_seen(1) is None


def test_monitor_follows_room_phase(make_room, fixed_chooser):
    fixed_chooser(0)
    code, sessions = make_room(count=3)
    room = store.load_room_by_code(code)
    assert inactivity.get_monitor(room.id) is None

    engine.start_game(code, sessions[0])
    monitor = inactivity.get_monitor(room.id)
    assert monitor is not None
    assert all(monitor.last_seen(p.id) is not None for p in store.load_players(room.id))

    engine.choose_answer(code, sessions[0], 'Flamengo')
    assert inactivity.get_monitor(room.id) is monitor

    engine.submit_guess(code, sessions[1], 'Flamengo')
    assert inactivity.get_monitor(room.id) is None
    assert monitor.cancelled is True


def test_sweep_evicts_idle_player(flask_app, make_room, fixed_chooser):
    fixed_chooser(0)
    code, sessions = make_room(count=3)
    engine.start_game(code, sessions[0])
    engine.choose_answer(code, sessions[0], 'Flamengo')
    room = store.load_room_by_code(code)
    players = store.load_players(room.id)
    idle_id = players[2].id

    inactivity.record_activity(room.id, players[0].id, now=1000.0)
    inactivity.record_activity(room.id, players[1].id, now=1000.0)
    inactivity.record_activity(room.id, players[2].id, now=900.0)

    evicted = inactivity.sweep(flask_app, room.id, now=1010.0)
    assert evicted == [idle_id]

    room = store.load_room_by_code(code)
    remaining = store.load_players(room.id)
    assert [p.session_id for p in remaining] == sessions[:2]
    assert room.status == 'playing'
    assert inactivity.get_monitor(room.id).last_seen(idle_id) is None


def test_sweep_passes_turn_of_idle_turn_holder(flask_app, make_room, fixed_chooser):
    fixed_chooser(0)
    code, sessions = make_room(count=4)
    engine.start_game(code, sessions[0])
    engine.choose_answer(code, sessions[0], 'Flamengo')
    room = store.load_room_by_code(code)
    players = store.load_players(room.id)
    assert players[room.current_turn_index].session_id == sessions[1]
    idle_id = players[1].id

    for p in players:
        inactivity.record_activity(room.id, p.id, now=1000.0)
    inactivity.record_activity(room.id, idle_id, now=900.0)

    assert inactivity.sweep(flask_app, room.id, now=1010.0) == [idle_id]
    room = store.load_room_by_code(code)
    remaining = store.load_players(room.id)
    assert [p.session_id for p in remaining] == [sessions[0], sessions[2], sessions[3]]
    assert room.status == 'playing'
    assert remaining[room.current_chooser_index].session_id == sessions[0]
    assert remaining[room.current_turn_index].session_id == sessions[2]

def test_actions_and_heartbeats_reset_the_clock(make_room, fixed_chooser):
    fixed_chooser(0)
    code, sessions = make_room(count=3)
    engine.start_game(code, sessions[0])
    room = store.load_room_by_code(code)
    players = store.load_players(room.id)
    for p in players:
        inactivity.record_activity(room.id, p.id, now=0.0)

    engine.choose_answer(code, sessions[0], 'Flamengo')
    player = engine.heartbeat(code, sessions[1])
    assert player.id == players[1].id

    monitor = inactivity.get_monitor(room.id)
    assert monitor.last_seen(players[0].id) > 0.0
    assert monitor.last_seen(players[1].id) > 0.0
    assert monitor.last_seen(players[2].id) == 0.0


def test_sweep_ends_game_when_too_few_remain(flask_app, make_room, fixed_chooser):
    fixed_chooser(0)
    code, sessions = make_room(count=2)
    engine.start_game(code, sessions[0])
    room = store.load_room_by_code(code)
    players = store.load_players(room.id)
    host_id = players[0].id
    inactivity.record_activity(room.id, players[0].id, now=0.0)
    inactivity.record_activity(room.id, players[1].id, now=10.0)

    evicted = inactivity.sweep(flask_app, room.id, now=500.0)
    assert evicted == [host_id]
    room = store.load_room_by_code(code)
    assert room.status == 'game_over'
    assert inactivity.get_monitor(room.id) is None


def test_last_player_is_never_evicted(flask_app, make_room, fixed_chooser):
    flask_app.config['MIN_PLAYERS'] = 1
    fixed_chooser(0)
    code, sessions = make_room(count=2)
    engine.start_game(code, sessions[0])
    room = store.load_room_by_code(code)
    players = store.load_players(room.id)
    keep_id, idle_id = players[0].id, players[1].id
    inactivity.record_activity(room.id, players[0].id, now=1.0)
    inactivity.record_activity(room.id, players[1].id, now=0.0)

    evicted = inactivity.sweep(flask_app, room.id, now=500.0)
    assert evicted == [idle_id]
    remaining = store.load_players(room.id)
    assert [p.id for p in remaining] == [keep_id]
    assert store.load_room_by_code(code).status == 'choosing'


def test_sweep_without_monitor_is_noop(flask_app, make_room):
    code, sessions = make_room(count=2)
    room = store.load_room_by_code(code)
    assert inactivity.sweep(flask_app, room.id, now=10_000.0) == []
    assert len(store.load_players(room.id)) == 2
