schedule_roster_description = """
Generate a guard roster for a date range. Each day has 12 two-hour periods (period 0 = 00:00-02:00)
and every active position needs one person per period.

### Request Body

- `startDate`, `endDate`: First and last day of the roster (inclusive).
- `mode`: `GreedyOnly` (default) or `Hybrid` (greedy + backtracking result refined by a genetic algorithm).

- `personnel`: List of `PersonnelModel` objects:
    - `id`: Primary key of the person
    - `name`: Name of the person
    - `skillIds`: Skills held
    - `isAvailable`, `isRetired`: Only available, non-retired personnel are scheduled
    - `recentShiftInterval`: Periods since the last shift before `startDate` (Optional)
    - `recentHolidayShiftInterval`: Days since the last holiday shift (Optional)
    - `recentPeriodShiftIntervals`: 12 values, days since the person last held each period (Optional)

- `positions`: List of `PositionModel` objects:
    - `id`, `name`, `location`, `description`
    - `requiredSkillIds`: Skills a person must all hold (empty = anyone)
    - `availablePersonnelIds`: Allow-list of personnel ids (empty = anyone)
    - `isActive`: Inactive positions are skipped

- `fixedRules`: List of `FixedPositionRuleModel` objects restricting a person to some positions
  and/or periods. A person with several enabled rules passes if any rule allows the placement. (Optional)

- `manualAssignments`: List of `ManualAssignmentModel` objects pinning a person to a
  (position, period, date). Pins override skills and availability and are never changed. (Optional)

- `holidayConfig`: Rest-day policy used for holiday fairness. Precedence: `excludedDates`,
  `customHolidays`, `legalHolidays`, then the weekend rule on `weekendDays` (Monday = 0). (Optional)

- `geneticConfig`: Genetic algorithm settings for `Hybrid` mode. (Optional)
- `backtrackingConfig`: Repair search settings; zero or negative numbers fall back to defaults. (Optional)
- `options`: `enforceNonConsecutive`, `enforceNightUniqueness` (both default `true`). (Optional)

### Hard rules

1. Only available, non-retired personnel.
2. Position allow-list and required skills.
3. One person per position and period; a person holds at most one position per period.
4. No two adjacent periods for the same person, across midnight too.
5. At most one night period (22:00-06:00) per person per date.
6. Fixed position rules.
7. Manual assignments come first.

### Fairness scoring

Candidates are ranked by rest since their last shift, time since they last held the same period,
holiday balance on rest days and their current shift count.

### Response

- `schedule`: One record per date and period, one column per position (manual pins marked `*`).
- `summary`: Shifts, holiday shifts and night shifts per person.
- `coverage`: Assigned slots per position.
- `statistics`: Totals, soft constraint scores, backtracking and genetic run statistics.
- `conflicts`: Conflicts with type, sub type and severity (1-5).
- `unassigned`: Slots that could not be filled, with the reason.
- `report`: Formatted diagnostic report when slots stay unassigned.
- `isPartialResult`, `message`.

### Errors

- `400`: Invalid input (no personnel or positions, end date before start date, period outside 0-11,
  unknown or duplicate ids). The message lists every problem found.
- `500`: Unexpected failure.
"""
