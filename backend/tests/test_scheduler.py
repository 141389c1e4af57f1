from bingo.services.games.scheduler import PeriodicTask


class Recorder:

    def __init__(self):
        self.calls = []

    def __call__(self, target, *args):
        self.calls.append((target, args))


def test_start_is_idempotent_while_running():
    spawn = Recorder()
    task = PeriodicTask('t', 5, lambda: None, spawn=spawn, sleep=lambda s: None)
    assert task.start()
    assert not task.start()
    assert len(spawn.calls) == 1
    assert task.running


def test_worker_fires_until_cancelled():
    fired = []

    def callback():
        fired.append(1)
        if len(fired) == 3:
            task.cancel()

    def spawn(target, *args):
        target(*args)

    task = PeriodicTask('t', 7, callback, spawn=spawn, sleep=lambda s: None)
    task.start()
    assert len(fired) == 3
    assert not task.running


def test_cancelled_worker_never_fires():
    fired = []
    spawn = Recorder()
    task = PeriodicTask('t', 7, lambda: fired.append(1), spawn=spawn, sleep=lambda s: None)
    task.start()
    assert task.cancel()
    assert not task.cancel()
    target, args = spawn.calls[0]
    target(*args)
    assert fired == []


def test_restart_leaves_old_worker_stale():
    fired = []
    spawn = Recorder()
    task = PeriodicTask('t', 7, lambda: fired.append(1), spawn=spawn, sleep=lambda s: None)
    task.start()
    task.cancel()
    task.start()
    stale_target, stale_args = spawn.calls[0]
    stale_target(*stale_args)
    assert fired == []
    assert task.running


def test_callback_errors_do_not_kill_the_loop():
    fired = []

    def callback():
        fired.append(1)
        if len(fired) == 1:
            raise RuntimeError('boom')
        task.cancel()

    task = PeriodicTask('t', 1, callback, spawn=lambda target, *args: target(*args), sleep=lambda s: None)
    task.start()
    assert len(fired) == 2


def test_heartbeat_splits_the_sleep():
    slept = []

    def sleep(seconds):
        slept.append(seconds)
        if len(slept) == 3:
            task.cancel()

    task = PeriodicTask('t', 3, lambda: None, spawn=lambda target, *args: target(*args), sleep=sleep, heartbeat=1)
    task.start()
    assert slept == [1, 1, 1]


def test_restart_inside_the_guard_stops_the_old_worker():
    fired = []
    spawn = Recorder()

    class RestartingGuard:
        """Cancels and restarts the task just before the old worker gets in."""

        def __init__(self):
            self.restarted = False

        def __enter__(self):
            if not self.restarted:
                self.restarted = True
                task.cancel()
                task.start()

        def __exit__(self, *exc):
            return False

    task = PeriodicTask(
        't', 7, lambda: fired.append(1),
        spawn=spawn, sleep=lambda s: None, guard=RestartingGuard(),
    )
    task.start()
    old_target, old_args = spawn.calls[0]
    old_target(*old_args)

    assert fired == []
    assert len(spawn.calls) == 2
    assert task.running


def test_guard_is_held_while_the_callback_runs():
    trace = []

    class RecordingGuard:

        def __enter__(self):
            trace.append('enter')

        def __exit__(self, *exc):
            trace.append('exit')
            return False

    def callback():
        trace.append('fire')
        task.cancel()

    task = PeriodicTask(
        't', 1, callback,
        spawn=lambda target, *args: target(*args), sleep=lambda s: None, guard=RecordingGuard(),
    )
    task.start()
    assert trace == ['enter', 'fire', 'exit']
