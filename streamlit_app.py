from __future__ import annotations

import json
import time
from pathlib import Path

import streamlit as st

from groupchat.config import ChatConfig, DecisionMode
from groupchat.llm import build_invoker
from groupchat.manager import ChatManager
from groupchat.scenarios import SCENARIOS, build_scenario
from groupchat.stream_runner import run_chat_stream


ROOT = Path(__file__).resolve().parent
RESULTS_DIR = ROOT / "chat_results"

AVATARS = ["🟦", "🟩", "🟧", "🟪"]


st.set_page_config(page_title="Agent Group Chat", page_icon="🤖", layout="wide")

st.sidebar.title("Group Chat – Controls")
scenario_name = st.sidebar.selectbox("Scenario", sorted(SCENARIOS), index=0)
preview = build_scenario(scenario_name)
case = st.sidebar.selectbox("Test case", ["Custom"] + list(preview.test_cases), index=0)
if case == "Custom":
    message = st.sidebar.text_area("Opening message", value="My device is not reporting.", height=100)
else:
    message = case

max_turns = st.sidebar.slider("Max turns", min_value=3, max_value=20, value=10, step=1)
simulate = st.sidebar.checkbox("Simulation mode (no API calls)", value=True)
decisions = st.sidebar.radio("Decisions", [m.value for m in DecisionMode], index=0)
start_btn = st.sidebar.button("Start Chat", type="primary")

out_box = st.sidebar.container()

st.title("Live Agent Group Chat")
chat_area = st.container()
status_text = st.empty()

if start_btn:
    if not (message or "").strip():
        st.sidebar.error("Enter an opening message")
        st.stop()

    config = ChatConfig.from_env()
    config.max_turns = max_turns
    config.decision_mode = DecisionMode(decisions)
    if simulate:
        config.simulation_mode = True
    invoke = None if config.simulation_mode else build_invoker(config.model)
    manager = ChatManager(build_scenario(scenario_name), config=config, invoke=invoke)
    avatars = {name: AVATARS[i % len(AVATARS)] for i, name in enumerate(manager.scenario.roster.names)}

    with chat_area:
        t0 = time.perf_counter()
        for event in run_chat_stream(manager, message):
            if event["type"] == "start":
                d = event["data"]
                st.write(f"Agents: {' → '.join(d['agents'])} | mode: {d['mode']}")
            elif event["type"] == "turn":
                d = event["data"]
                is_user = d["speaker"] == "user"
                with st.chat_message("user" if is_user else "assistant", avatar=None if is_user else avatars.get(d["speaker"])):
                    st.markdown(
                        f"**{d['speaker']}**\n\n```\n{d['message']}\n```\n"
                        f"<span style='color:gray;font-size:smaller'>[turn {d['turn']}] {d['timestamp']}</span>",
                        unsafe_allow_html=True,
                    )
                status_text.info(f"{d['turn']} / {max_turns} turns")
            elif event["type"] == "end":
                result = event["data"]
                t1 = time.perf_counter()
                if result["state"] == "complete":
                    status_text.success(
                        f"Chat completed in {t1 - t0:.1f}s | reason: {result['reason']} | resolved: {result['resolved']}"
                    )
                else:
                    status_text.error(f"Chat aborted: {result['error']}")

                with out_box:
                    st.subheader("Result")
                    st.metric("Turns", result["turn_count"])
                    st.write(f"State: {result['state']} | downgraded: {result['downgraded']}")

                RESULTS_DIR.mkdir(parents=True, exist_ok=True)
                out_name = f"{scenario_name}__{int(time.time())}.json"
                (RESULTS_DIR / out_name).write_text(json.dumps(result, ensure_ascii=False, indent=2), encoding="utf-8")
                break

else:
    st.info("Pick a scenario and click Start Chat")
