import logging

import numpy as np
from strainedflame import FlameConfig, FlameSolver, GridConfig

logging.basicConfig(level=logging.INFO, format='%(name)s: %(message)s')

# Methane-air flame with a strain rate ramp
config = FlameConfig(
    mechanism='gri30.yaml',
    fuel='CH4:1',
    oxidizer='O2:1, N2:3.76',
    equivalenceRatio=1.0,
    pressure=101325.0,  # 1 atm
    Tu=300.0,           # K

    # Initial grid and profiles
    xLeft=0.0,     # m
    xRight=0.01,   # m
    nPoints=60,
    slopeWidth=0.001,
    smoothCount=4,

    # Strain rate increases from 100 to 300 1/s
    strainRateInitial=100.0,
    strainRateFinal=300.0,
    strainRateT0=0.002,
    strainRateDt=0.004,

    # Keep the flame near the middle of the domain
    flameRadiusControl=True,
    xFlameInitial=0.005,

    tEnd=0.02,
    terminateForSteadyQdot=True,
    outputDir='output',
    outputProfiles=True,
    grid=GridConfig(gridMax=2e-4, vtol=0.12, dvtol=0.2),
)

flame = FlameSolver(config)
flame.initialize()
T_initial = flame.system.T.copy()
x_initial = flame.grid.x.copy()

flame.run()
system = flame.system

# Plot results
import matplotlib.pyplot as plt

plt.figure(figsize=(10,6))
plt.plot(x_initial, T_initial, 'k--', label='initial')
plt.plot(flame.grid.x, system.T, 'r-', label=f't={flame.tNow:.4f}')
plt.xlabel('Position [m]')
plt.ylabel('Temperature [K]')
plt.title('Temperature profile')
plt.legend()
plt.grid(True)

plt.figure(figsize=(10,6))
names = flame.gas.speciesNames
for name, style in (('CH4', 'b-'), ('O2', 'r-'), ('CO2', 'g-'), ('H2O', 'm-')):
    plt.plot(flame.grid.x, system.Y[names.index(name)], style, label=name)
plt.xlabel('Position [m]')
plt.ylabel('Mass Fraction')
plt.title('Major species')
plt.legend()
plt.grid(True)

fig, ax = plt.subplots(2, 1, figsize=(10,8), sharex=True)
t = np.array(flame.timeVector)
ax[0].plot(t, flame.heatReleaseRate)
ax[0].set_ylabel('Heat release rate [W/m$^2$]')
ax[1].plot(t, flame.consumptionSpeed)
ax[1].set_ylabel('Consumption speed [m/s]')
ax[1].set_xlabel('Time [s]')
for a in ax:
    a.grid(True)
plt.show()
