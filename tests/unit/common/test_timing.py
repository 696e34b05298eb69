from src.common.timing import StageTimer


def test_disabled_timer_records_nothing():
    timer = StageTimer('upload', enabled=False)
    with timer.stage('prepare'):
        pass
    timer.log(user_id='usr-1')
    assert timer.durations_ms == {}


def test_enabled_timer_records_each_stage():
    timer = StageTimer('upload', enabled=True)
    with timer.stage('prepare'):
        pass
    with timer.stage('upsert'):
        pass
    assert list(timer.durations_ms) == ['prepare', 'upsert']
    assert all(duration >= 0 for duration in timer.durations_ms.values())


def test_stage_is_recorded_when_it_raises():
    timer = StageTimer('upload', enabled=True)
    try:
        with timer.stage('recalculate'):
            raise RuntimeError('boom')
    except RuntimeError:
        pass
    assert 'recalculate' in timer.durations_ms
