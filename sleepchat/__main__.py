from sleepchat.main import run

run()
