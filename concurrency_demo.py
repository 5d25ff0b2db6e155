"""Concurrency demo: several users race to confirm the last seat of one ride.
This runs in-process and doesn't require the server to be started separately.
Run: python concurrency_demo.py
"""
import asyncio

import httpx

from main import app, ride_engine
from messaging import run_now
from routing import RouteEstimator
from sample_data import seed


async def run():
    users = seed()
    ride_engine.estimator = RouteEstimator(base_url=None)
    ride_engine.scheduler = run_now
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        host = users[0]
        ride = (await client.post("/rides", json={"user_id": host.id, "type": "REQUEST", "from": "UTA", "to": "Dallas", "time": "6 PM"})).json()
        riders = users[1:]
        for u in riders:
            await client.post(f"/rides/{ride['id']}/book", json={"user_id": u.id})
        tasks = [client.post(f"/rides/{ride['id']}/confirm", json={"user_id": u.id}) for u in riders]
        res = await asyncio.gather(*tasks)
        for r in res:
            print(r.status_code, r.json())
        final = (await client.get(f"/rides/{ride['id']}")).json()
        print("final status:", final["status"], "passenger:", final["passenger_id"])


if __name__ == "__main__":
    asyncio.run(run())
