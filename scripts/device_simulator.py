#!/usr/bin/env python3
"""
Simulated motor controller - registers as the device and pushes telemetry.

Applies motor_command messages from the relay and reports voltage, current and
power readings every few seconds, the way the embedded controller does.

Environment variables:
  WEBSOCKET_URL - relay WebSocket URL (default ws://localhost:3000/ws)
  DEVICE_ID - identifier sent with the registration (optional)
  TELEMETRY_INTERVAL - seconds between state updates (default 2)
"""
import asyncio
import json
import os
import random
from datetime import datetime

import aiohttp
from aiohttp import ClientWSTimeout


class MotorDeviceSimulator:
    """Simulates the embedded motor controller"""

    def __init__(self, url: str, device_id: str, interval: float = 2.0):
        self.url = url
        self.device_id = device_id
        self.interval = interval
        self.ws = None
        self.session = None
        self.running = False
        self.motors = {"A": False, "B": False}

    async def connect(self):
        """Connect to the relay and register as the device"""
        print(f"[DEVICE] Connecting to {self.url}")

        self.session = aiohttp.ClientSession()
        self.ws = await self.session.ws_connect(
            self.url,
            timeout=ClientWSTimeout(ws_close=10.0)
        )

        await self.ws.send_json({"type": "esp32_register", "id": self.device_id})
        print("[DEVICE] Sent registration")

        msg = await asyncio.wait_for(self.ws.receive(), timeout=5.0)
        if msg.type != aiohttp.WSMsgType.TEXT:
            print(f"[DEVICE] Registration failed: {msg.type}")
            return False

        initial = json.loads(msg.data)
        if initial.get("type") != "initial_state":
            print(f"[DEVICE] Unexpected reply: {initial}")
            return False

        self.motors["A"] = bool(initial.get("motorA"))
        self.motors["B"] = bool(initial.get("motorB"))
        print(f"[DEVICE] Registered, initial state A={self.motors['A']} B={self.motors['B']}")
        self.running = True
        return True

    def read_sensor(self):
        """Simulated power sensor reading; draw scales with running motors"""
        running = sum(self.motors.values())
        voltage = round(random.uniform(11.8, 12.4), 2)
        current = round(running * random.uniform(0.4, 0.6) + random.uniform(0.0, 0.02), 3)
        return voltage, current, round(voltage * current, 3)

    async def send_state(self):
        voltage, current, power = self.read_sensor()
        await self.ws.send_json({
            "type": "state_update",
            "motorA": self.motors["A"],
            "motorB": self.motors["B"],
            "voltage": voltage,
            "current": current,
            "power": power,
        })
        print(f"[DEVICE] {datetime.now():%H:%M:%S} sent {voltage}V {current}A {power}W")

    async def telemetry_loop(self):
        while self.running:
            await self.send_state()
            await asyncio.sleep(self.interval)

    async def listen_for_commands(self):
        """Apply motor commands and report the new state immediately"""
        async for msg in self.ws:
            if msg.type != aiohttp.WSMsgType.TEXT:
                if msg.type in (aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                    break
                continue

            data = json.loads(msg.data)
            if data.get("type") == "motor_command" and data.get("motor") in self.motors:
                self.motors[data["motor"]] = bool(data.get("state"))
                print(f"[DEVICE] Motor {data['motor']} -> {'ON' if data['state'] else 'OFF'}")
                await self.send_state()

        self.running = False

    async def run(self):
        telemetry = asyncio.create_task(self.telemetry_loop())
        try:
            await self.listen_for_commands()
        finally:
            telemetry.cancel()
            try:
                await telemetry
            except asyncio.CancelledError:
                pass

    async def disconnect(self):
        if self.ws:
            await self.ws.close()
            print("[DEVICE] Disconnected")
        if self.session:
            await self.session.close()


async def main():
    url = os.getenv("WEBSOCKET_URL", "ws://localhost:3000/ws")
    device_id = os.getenv("DEVICE_ID", f"sim_{int(datetime.now().timestamp())}")
    interval = float(os.getenv("TELEMETRY_INTERVAL", "2"))

    simulator = MotorDeviceSimulator(url, device_id, interval)
    try:
        if await simulator.connect():
            await simulator.run()
        else:
            print("[DEVICE] Failed to connect")
    finally:
        await simulator.disconnect()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nSimulator stopped by user")
