"""Minimal demonstration of the Nexus agent turn loop."""

from nexus_agent.api.service import run_chat, session_title

if __name__ == "__main__":
    question = "What is 12 * 7? Also remember that my favorite color is teal."
    reply = run_chat(question, on_tool_start=lambda name: print(f"[tool] {name}"))
    print("Session:", session_title([{"role": "user", "content": question}]))
    print("User:", question)
    print("Agent:", reply["content"])
