import importlib
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from calculations import ArithmeticDegenerate, SimulationInputs, run_simulation

main = importlib.import_module("main")


class DummyCtx:
    def __enter__(self):
        return self
    def __exit__(self, exc_type, exc, tb):
        pass


class SessionState(dict):
    def __getattr__(self, name):
        return self[name]
    def __setattr__(self, name, value):
        self[name] = value


class DummyStreamlit:
    def __init__(self):
        self.session_state = SessionState()
        self.messages = []
        self.number_inputs = {}
    def expander(self, *args, **kwargs):
        return DummyCtx()
    def spinner(self, *args, **kwargs):
        return DummyCtx()
    def columns(self, n):
        return [DummyCtx() for _ in range(n)]
    def write(self, *args, **kwargs):
        self.messages.append(("write", args[0]))
    def success(self, *args, **kwargs):
        self.messages.append(("success", args[0]))
    def warning(self, *args, **kwargs):
        self.messages.append(("warning", args[0]))
    def error(self, *args, **kwargs):
        self.messages.append(("error", args[0]))
    def metric(self, *args, **kwargs):
        pass
    def info(self, *args, **kwargs):
        pass
    def form(self, *args, **kwargs):
        return DummyCtx()
    def markdown(self, *args, **kwargs):
        pass
    def button(self, *args, **kwargs):
        return False
    def checkbox(self, *args, **kwargs):
        return False
    def form_submit_button(self, *args, **kwargs):
        return False
    def text_input(self, label, value="", **kwargs):
        return value
    def number_input(self, label, **kwargs):
        self.number_inputs[label] = kwargs
        return kwargs["value"]


INPUTS = {
    "bitcoin_amount": 3.2,
    "bitcoin_price_start": 100000.0,
    "years": 20,
    "interest_rate": 8.0,
    "inflation_rate": 3.0,
    "initial_growth_rate": 60.0,
    "terminal_growth_rate": 15.0,
    "max_ltv": 50.0,
    "annual_expenses": 150000.0,
    "optimize": False,
}


def _result(optimize=False, **overrides):
    params = {k: v for k, v in INPUTS.items() if k != "optimize"}
    params.update(overrides)
    return run_simulation(SimulationInputs(**params), optimize=optimize)


def _stub_renderers(monkeypatch):
    st_stub = DummyStreamlit()
    monkeypatch.setattr(main, "st", st_stub)
    monkeypatch.setattr(main, "show_growth_schedule", lambda *args, **kwargs: None)
    monkeypatch.setattr(main, "show_projection_chart", lambda *args, **kwargs: None)
    monkeypatch.setattr(main, "show_results_table", lambda *args, **kwargs: None)
    return st_stub


def test_render_results_optimal_mode_stays_within_max_ltv(monkeypatch):
    st_stub = _stub_renderers(monkeypatch)
    result = _result(optimize=True)

    summary = main.render_results(result, dict(INPUTS, optimize=True))

    assert summary["within_max_ltv"]
    assert summary["peak_ltv_ratio"] <= 50
    assert summary["annual_expenses"] == result.annual_expenses
    assert summary["final_net_worth"] == result.snapshots[-1].net_worth
    assert st_stub.messages[0][0] == "success"


def test_render_results_warns_when_ltv_exceeds_max(monkeypatch):
    st_stub = _stub_renderers(monkeypatch)
    result = _result(annual_expenses=300000.0)

    summary = main.render_results(result, dict(INPUTS, annual_expenses=300000.0))

    assert not summary["within_max_ltv"]
    assert summary["peak_ltv_ratio"] > 50
    assert any(kind == "warning" for kind, _ in st_stub.messages)


def test_validate_form_inputs_reports_errors():
    errors = main.validate_form_inputs(dict(INPUTS, bitcoin_amount=0.0, max_ltv=150.0))
    assert len(errors) == 2


def test_compute_projection_shows_degenerate_error(monkeypatch):
    st_stub = _stub_renderers(monkeypatch)

    def boom(*args, **kwargs):
        raise ArithmeticDegenerate("projection produced a non-finite bitcoin price")

    monkeypatch.setattr(main, "_cached_run_simulation", boom)

    assert main.compute_projection(dict(INPUTS)) is None
    assert st_stub.messages[-1][0] == "error"
    assert st_stub.session_state["last_inputs"] == INPUTS


def test_max_ltv_input_accepts_small_ceilings(monkeypatch):
    st_stub = _stub_renderers(monkeypatch)
    st_stub.session_state.calculator_expanded = True

    main.render_calculator(100000.0)

    ltv_field = st_stub.number_inputs["Maximum LTV (%)"]
    assert 0 < ltv_field["min_value"] < 1
    assert ltv_field["max_value"] == 100.0
    assert main.validate_form_inputs(dict(INPUTS, max_ltv=ltv_field["min_value"])) == []
