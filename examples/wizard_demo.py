#!/usr/bin/env python3
"""Walk through the wizard screens against the simulated sensor box.

No hardware needed: the controller is wired to FakeSerial. Shows the
combined HR_SPO2 request filling both screens, a TEMP error retry and
the lock-on-first-valid policy.
"""

import logging
import time

from fakes.fake_serial import FakeSerial
from vitals_lib import MeasurementController, WizardConfig

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def wait_for_slot(controller, key, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        text = controller.display_snapshot().get(key, "")
        if text and text not in ("Waiting…", "Error"):
            return text
        time.sleep(0.02)
    return controller.display_snapshot().get(key, "")


print("=" * 70)
print("Vitals Wizard demo (simulated sensor box)")
print("=" * 70)

fake = FakeSerial(hr=71.9, spo2=97, temp=36.55)
fake.script("TEMP", "TEMP:NA")

controller = MeasurementController(WizardConfig(command_delay_s=0.1, retry_delay_s=0.3))

try:
    controller.connect(serial_port=fake)
    print(f"Status: {controller.status_text}\n")

    for screen in (6, 8, 9, 10, 13):
        key = controller.on_screen_change(screen)
        text = wait_for_slot(controller, str(key))
        print(f"[screen {screen:2}] {str(key):6} -> {text:10} "
              f"state={controller.session_state.value:9} progress={controller.progress_percent:5.1f}%")

    print(f"\nRequests sent: {fake.commands}")
    print(f"Stored values: {controller.stored_values()}")
finally:
    controller.close()
