from unittest.mock import patch

import pytest

from procmach.machine import (
    ATOM_EXPECTED_VALUE,
    ProcessState,
    Scheduler,
)
from procmach.programs import main, program_adder, program_link, program_monitor


class _Stop(Exception):
    pass


def test_adder_prints_sum(capsys):
    scheduler = Scheduler()
    process_main, process_sender = program_adder(scheduler)
    out = capsys.readouterr().out
    assert "[Int(6)]" in out
    assert process_main.stack == [6]
    assert process_main.frames[0].locals == [3, 3]
    assert scheduler.processes == {}
    assert len(scheduler.task_queue) == 0


def test_adder_sender_exits_normally(capsys):
    process_main, process_sender = program_adder(Scheduler())
    capsys.readouterr()
    assert process_sender.state is ProcessState.EXITING
    assert process_sender.exit_reason is None
    assert process_main.exit_reason is None
    assert len(process_main.mailbox) == 0


def test_monitor_receives_normal_exit_notice(capsys):
    scheduler = Scheduler()
    process_exit, process_main = program_monitor(scheduler)
    out = capsys.readouterr().out
    expected = f"{{Atom(Atom(0)), Pid({process_exit.pid!r}), Atom(Atom(1))}}"
    assert expected in out.splitlines()
    assert scheduler.processes == {}


def test_monitor_exit_process_runs_returned_frame(capsys):
    process_exit, process_main = program_monitor(Scheduler())
    capsys.readouterr()
    assert process_exit.stack == [-3]
    assert process_exit.exit_reason is None
    assert process_main.exit_reason == ATOM_EXPECTED_VALUE
    assert process_exit.monitors == [process_main.pid]


def test_main_runs_adder_by_default(capsys):
    assert main([]) == 0
    assert "[Int(6)]" in capsys.readouterr().out


def test_main_runs_named_program(capsys):
    assert main(["monitor"]) == 0
    out = capsys.readouterr().out
    assert "Atom(Atom(1))}" in out


def test_main_rejects_unknown_program(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["nonsense"])
    assert excinfo.value.code == 2