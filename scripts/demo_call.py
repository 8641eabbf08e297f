#!/usr/bin/env python3
"""
Demo Call - Two Participants

This script plays both sides of a time-boxed call:
1. Creates a session over HTTP (POST /api/sessions)
2. Connects "alice" and "bob" over WebSocket and joins both
3. Alice sends webrtc_offer, Bob answers, both trade an ICE candidate
4. Prints the countdown until the server ends the call

Usage:
    python scripts/demo_call.py [duration_minutes]

Requirements:
    - CallSync running locally:
      uvicorn callsync.transport.app:app --port 3001
"""

import asyncio
import json
import sys

import httpx
import websockets

BASE_URL = "http://localhost:3001"
WS_URL = "ws://localhost:3001/ws"

FAKE_OFFER = {"type": "offer", "sdp": "v=0\r\no=alice 1 1 IN IP4 0.0.0.0\r\n"}
FAKE_ANSWER = {"type": "answer", "sdp": "v=0\r\no=bob 1 1 IN IP4 0.0.0.0\r\n"}
FAKE_CANDIDATE = {"candidate": "candidate:1 1 udp 2122260223 192.0.2.10 50000 typ host", "sdpMLineIndex": 0}


def create_frame(event: str, **data) -> str:
    """Create a client frame."""
    return json.dumps({"event": event, "data": data})


async def participant(name: str, session_id: str, caller: bool):
    """Run one side of the call until force_end_call."""
    async with websockets.connect(WS_URL) as ws:
        await ws.send(create_frame("join_session", sessionId=session_id, userId=name))
        print(f"[{name}] joined {session_id}")

        async for raw in ws:
            frame = json.loads(raw)
            event = frame["event"]
            data = frame["data"]

            if event == "timer_tick":
                remaining = data["timeRemaining"]
                if caller and remaining % 10 == 0:
                    print(f"⏱  {remaining // 60:02d}:{remaining % 60:02d} remaining ({data['status']})")
                continue

            print(f"[{name}] ← {event}: {json.dumps(data)}")

            if event == "call_started":
                if caller:
                    await ws.send(create_frame("webrtc_offer", sessionId=session_id, offer=FAKE_OFFER))
            elif event == "webrtc_offer":
                await ws.send(create_frame("webrtc_answer", sessionId=session_id, answer=FAKE_ANSWER))
                await ws.send(create_frame("webrtc_ice_candidate", sessionId=session_id, candidate=FAKE_CANDIDATE))
            elif event == "webrtc_answer":
                await ws.send(create_frame("webrtc_ice_candidate", sessionId=session_id, candidate=FAKE_CANDIDATE))
            elif event == "force_end_call":
                print(f"[{name}] call over: {data['message']}")
                return


async def main():
    duration = int(sys.argv[1]) if len(sys.argv) > 1 else 1

    print("="*70)
    print("📞 CALLSYNC DEMO CALL")
    print("="*70)
    print(f"Server: {BASE_URL}")
    print(f"Duration: {duration} min")
    print("="*70)

    try:
        async with httpx.AsyncClient(base_url=BASE_URL) as client:
            response = await client.post(
                "/api/sessions",
                json={"callerId": "alice", "calleeId": "bob", "durationLimit": duration},
            )
            response.raise_for_status()
            session = response.json()
        print(f"Session: {session['sessionId']} (channel {session['channelName']})")

        await asyncio.gather(
            participant("alice", session["sessionId"], caller=True),
            participant("bob", session["sessionId"], caller=False),
        )

        print("\n" + "="*70)
        print("✅ DEMO COMPLETE")
        print("="*70)

    except (httpx.ConnectError, ConnectionRefusedError, OSError) as e:
        print("\n" + "="*70)
        print("❌ CONNECTION FAILED")
        print("="*70)
        print(f"Could not reach CallSync at {BASE_URL}: {e}")
        print("💡 Start the server with:")
        print("   uvicorn callsync.transport.app:app --port 3001")
        print("="*70)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n👋 Demo interrupted")


if __name__ == "__main__":
    asyncio.run(main())
